"""
Tests for catalog.session module.
"""
from unittest.mock import patch

from catalog.query import QueryState
from catalog.session import SessionContext


class TestSessionContext:
    """Tests for SessionContext."""

    def test_defaults(self):
        session = SessionContext()
        assert session.auth_token is None
        assert not session.authenticated
        assert isinstance(session.query, QueryState)

    def test_login_logout(self):
        session = SessionContext()
        session.login("dG9rZW4=")
        assert session.authenticated
        session.logout()
        assert session.auth_token is None

    def test_sessions_do_not_share_query_state(self):
        first, second = SessionContext(), SessionContext()
        first.query.search_query = "http"
        assert second.query.search_query == ""

    def test_from_config(self):
        with patch("catalog.session.config") as mock_config:
            mock_config.remote.auth_token = "abc"
            assert SessionContext.from_config().auth_token == "abc"

            mock_config.remote.auth_token = ""
            assert SessionContext.from_config().auth_token is None
