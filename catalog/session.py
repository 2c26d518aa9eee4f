"""
Explicit session context.

Holds the per-operator state (remote credential, current query) that is
handed to the remote client, the sync coordinator and the query engine
instead of living in module globals.
"""
from dataclasses import dataclass, field
from typing import Optional

from catalog.config import config
from catalog.query import QueryState


@dataclass
class SessionContext:
    """State for one operator session."""
    auth_token: Optional[str] = None
    query: QueryState = field(default_factory=QueryState)

    @classmethod
    def from_config(cls) -> "SessionContext":
        return cls(auth_token=config.remote.auth_token or None)

    @property
    def authenticated(self) -> bool:
        return bool(self.auth_token)

    def login(self, token: str) -> None:
        self.auth_token = token

    def logout(self) -> None:
        self.auth_token = None
