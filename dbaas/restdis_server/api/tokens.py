"""
Token Store for ACL RESTTOKEN credentials.

ACL RESTTOKEN exchanges a username and password for a token. The token
then authenticates REST requests as that user, without the password
being sent again.

Invariants:
    - Tokens live as long as the server process, they are never persisted
    - Every access to the map holds the lock, and only for the map access
"""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class Credential:
    """A Redis ACL username and password."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"


class TokenStore:
    """Mapping of issued tokens to the credential they stand for.

    Owned by one server instance; safe to use from concurrent requests.

    Example:
        >>> store = TokenStore()
        >>> store.issue("tok", Credential("user", "pwd"))
        >>> store.lookup("tok").username
        'user'
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[str, Credential] = {}

    def issue(self, token: str, credential: Credential) -> None:
        """Register a token for a credential."""
        with self._lock:
            self._tokens[token] = credential

    def lookup(self, token: str) -> Credential | None:
        """Return the credential of a token, or None if unknown."""
        with self._lock:
            return self._tokens.get(token)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
