"""Shared pytest fixtures: in-memory storage, fake backend and relay."""
import json
from typing import Any, Callable, Optional, Union

import httpx
import jwt
import pytest

from milkmaster.core.config import Settings
from milkmaster.core.identity import TOKEN_KEY, USER_KEY, IdentityResolver
from milkmaster.core.session import SessionManager
from milkmaster.core.storage import MemoryStorage
from milkmaster.database.carts import CartStore
from milkmaster.services.checkout_flow import CheckoutFlow
from milkmaster.services.mail_relay import OtpMailer
from milkmaster.services.storefront_client import StorefrontClient

API_URL = "http://api.test"
RELAY_URL = "http://relay.test/submit"
TOKEN_SECRET = "milkmaster-test-secret-key-0123456789"


def make_token(**claims: Any) -> str:
    """Signed bearer token carrying the given claims."""
    return jwt.encode(claims, TOKEN_SECRET, algorithm="HS256")


def product(
    product_id: str = "p1",
    name: str = "Milk",
    price: Union[float, str] = 50.0,
    stock: int = 10,
    **extra: Any,
) -> dict:
    """Catalog snapshot as the product page passes it to the cart."""
    return {
        "id": product_id,
        "name": name,
        "price": price,
        "stock": stock,
        "imageUrl": f"/images/{product_id}.png",
        **extra,
    }


Route = Union[Callable[[httpx.Request], httpx.Response], tuple]


class FakeBackend:
    """
    Scripted HTTP server for httpx.MockTransport.

    Routes are keyed by (method, path). Unknown routes answer 404.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []

    def on(
        self,
        method: str,
        path: str,
        status: int = 200,
        json_body: Any = None,
        text: Optional[str] = None,
    ) -> None:
        self.routes[(method, path)] = (status, json_body, text)

    def on_call(self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[(method, path)] = handler

    def fail(self, method: str, path: str) -> None:
        """Make a route raise a transport error."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)
        self.routes[(method, path)] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(route):
            return route(request)

        status, json_body, text = route
        if text is not None:
            return httpx.Response(status, text=text)
        if json_body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=json_body)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def bodies(self, path: str) -> list[Any]:
        return [json.loads(r.content) for r in self.calls(path)]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def identity(storage) -> IdentityResolver:
    return IdentityResolver(storage)


@pytest.fixture
def login(storage) -> Callable[..., str]:
    """Log a user in the way the login page does."""

    def _login(
        user_id: str = "u1",
        email: str = "asha@example.com",
        record: Optional[dict] = None,
    ) -> str:
        token = make_token(userId=user_id, email=email, role="customer")
        storage.set(TOKEN_KEY, token)
        if record is not None:
            storage.set(USER_KEY, json.dumps(record))
        return token

    return _login


@pytest.fixture
def cart(storage, identity) -> CartStore:
    return CartStore(storage, identity)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def relay() -> FakeBackend:
    relay = FakeBackend()
    relay.on("POST", "/submit", json_body={"success": True, "message": "Email sent"})
    return relay


@pytest.fixture
def client(backend, identity) -> StorefrontClient:
    return StorefrontClient(
        api_base_url=API_URL,
        token_provider=identity.get_token,
        http_client=httpx.AsyncClient(transport=backend.transport()),
    )


@pytest.fixture
def mailer(relay) -> OtpMailer:
    return OtpMailer(
        relay_url=RELAY_URL,
        access_key="relay-key",
        http_client=httpx.AsyncClient(transport=relay.transport()),
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        api_base_url=API_URL,
        mail_relay_url=RELAY_URL,
        mail_relay_access_key="relay-key",
        storage_path="unused.json",
    )


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager()


@pytest.fixture
def flow(sessions, cart, identity, client, mailer, test_settings) -> CheckoutFlow:
    return CheckoutFlow(
        session=sessions.create_session(),
        cart=cart,
        identity=identity,
        client=client,
        mailer=mailer,
        settings=test_settings,
    )
