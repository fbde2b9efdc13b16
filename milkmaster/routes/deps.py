"""Shared dependencies for the API routes"""

from typing import Optional

from fastapi import Depends

from ..core.config import settings
from ..core.identity import IdentityResolver
from ..core.storage import JsonFileStorage, StoragePort
from ..database.carts import CartStore
from ..services.mail_relay import OtpMailer
from ..services.storefront_client import StorefrontClient

# Initialize services lazily (overridden with fakes in tests)
storage: Optional[StoragePort] = None
cart_store: Optional[CartStore] = None
storefront_client: Optional[StorefrontClient] = None
otp_mailer: Optional[OtpMailer] = None


def get_storage() -> StoragePort:
    """Get or create the local storage"""
    global storage
    if storage is None:
        storage = JsonFileStorage(settings.storage_path)
    return storage


def get_identity(local_storage: StoragePort = Depends(get_storage)) -> IdentityResolver:
    return IdentityResolver(local_storage)


def get_cart_store(local_storage: StoragePort = Depends(get_storage)) -> CartStore:
    """Get or create the cart store"""
    global cart_store
    if cart_store is None:
        cart_store = CartStore(local_storage, IdentityResolver(local_storage))
    return cart_store


def get_storefront_client(local_storage: StoragePort = Depends(get_storage)) -> StorefrontClient:
    """Get or create the storefront API client"""
    global storefront_client
    if storefront_client is None:
        identity = IdentityResolver(local_storage)
        storefront_client = StorefrontClient(
            api_base_url=settings.api_base_url,
            token_provider=identity.get_token,
            timeout=settings.http_timeout,
        )
    return storefront_client


def get_otp_mailer() -> OtpMailer:
    """Get or create the OTP mailer"""
    global otp_mailer
    if otp_mailer is None:
        otp_mailer = OtpMailer(
            relay_url=settings.mail_relay_url,
            access_key=settings.mail_relay_access_key,
            store_name=settings.store_name,
            subject=settings.mail_relay_subject,
            currency_symbol=settings.currency_symbol,
        )
    return otp_mailer


async def close_clients() -> None:
    """Close outbound HTTP clients"""
    global storefront_client, otp_mailer
    if storefront_client:
        await storefront_client.close()
        storefront_client = None
    if otp_mailer:
        await otp_mailer.close()
        otp_mailer = None
