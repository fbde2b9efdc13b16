"""
Tests for checkout session bookkeeping.
"""
from datetime import datetime, timedelta

from milkmaster.models.checkout import CheckoutStep


class TestSessionManager:
    """Test creating and expiring checkout sessions."""

    def test_create_and_delete(self, sessions):
        session = sessions.create_session("u1")

        assert session.step == CheckoutStep.ADDRESS
        assert sessions.get_session(session.session_id) is session
        assert sessions.delete_session(session.session_id)
        assert not sessions.delete_session(session.session_id)

    def test_cleanup_uses_last_activity(self, sessions):
        idle = sessions.create_session("u1")
        idle.updated_at = datetime.utcnow() - timedelta(hours=3)
        busy = sessions.create_session("u2")
        busy.created_at = datetime.utcnow() - timedelta(hours=3)

        assert sessions.cleanup_old_sessions(max_age_hours=2) == 1
        assert sessions.get_session(idle.session_id) is None
        assert sessions.get_session(busy.session_id) is busy

    def test_touch_keeps_session_alive(self, sessions):
        session = sessions.create_session("u1")
        session.updated_at = datetime.utcnow() - timedelta(hours=30)

        session.touch()

        assert sessions.cleanup_old_sessions() == 0
