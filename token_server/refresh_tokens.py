"""
Refresh token store. The in-memory implementation keeps records for the process lifetime;
a database-backed store can replace it behind the same interface.
"""
import logging
import threading
from abc import ABC, abstractmethod

from token_server.models import RefreshToken

logger = logging.getLogger(__name__)


class RefreshTokenStore(ABC):
    @abstractmethod
    def save(self, token: RefreshToken) -> None:
        """Upsert by refresh token string (last write wins)."""

    @abstractmethod
    def find_by_token(self, token: str) -> RefreshToken | None:
        ...

    @abstractmethod
    def find_by_client_id(self, client_id: str) -> list[RefreshToken]:
        """All records for the client, valid or not."""

    @abstractmethod
    def revoke(self, token_id: str) -> None:
        """Replace the record with a revoked copy. Unknown id is a no-op."""

    @abstractmethod
    def revoke_all_for_client(self, client_id: str) -> int:
        ...

    @abstractmethod
    def delete_expired(self) -> int:
        """Remove expired records, revoked or not. Returns how many were removed."""

    @abstractmethod
    def delete_by_token(self, token: str) -> bool:
        """Remove by key. Returns False when nothing was there (someone else removed it first)."""

    @abstractmethod
    def claim(self, token: str) -> RefreshToken | None:
        """
        Atomically remove and return the record if it is still valid (unexpired, unrevoked).
        Otherwise leave the store unchanged and return None.
        """

    @abstractmethod
    def count_active_for_client(self, client_id: str) -> int:
        ...


class InMemoryRefreshTokenStore(RefreshTokenStore):
    """Dict keyed by token string, with indexes by client and token id, all guarded by one lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens: dict[str, RefreshToken] = {}
        self._by_client: dict[str, set[str]] = {}
        self._by_id: dict[str, str] = {}

    def _put(self, record: RefreshToken) -> None:
        previous = self._tokens.get(record.refresh_token)
        if previous is not None:
            self._unindex(previous)
        self._tokens[record.refresh_token] = record
        self._by_client.setdefault(record.client_id, set()).add(record.refresh_token)
        self._by_id[record.token_id] = record.refresh_token

    def _unindex(self, record: RefreshToken) -> None:
        keys = self._by_client.get(record.client_id)
        if keys is not None:
            keys.discard(record.refresh_token)
            if not keys:
                del self._by_client[record.client_id]
        if self._by_id.get(record.token_id) == record.refresh_token:
            del self._by_id[record.token_id]

    def _pop(self, token: str) -> RefreshToken | None:
        record = self._tokens.pop(token, None)
        if record is not None:
            self._unindex(record)
        return record

    def save(self, token: RefreshToken) -> None:
        with self._lock:
            self._put(token)

    def find_by_token(self, token: str) -> RefreshToken | None:
        with self._lock:
            return self._tokens.get(token)

    def find_by_client_id(self, client_id: str) -> list[RefreshToken]:
        with self._lock:
            return [self._tokens[k] for k in self._by_client.get(client_id, ())]

    def revoke(self, token_id: str) -> None:
        with self._lock:
            key = self._by_id.get(token_id)
            if key is None:
                return
            self._tokens[key] = self._tokens[key].revoked()

    def revoke_all_for_client(self, client_id: str) -> int:
        with self._lock:
            keys = list(self._by_client.get(client_id, ()))
            for key in keys:
                self._tokens[key] = self._tokens[key].revoked()
            return len(keys)

    def delete_expired(self) -> int:
        with self._lock:
            expired = [k for k, record in self._tokens.items() if record.is_expired()]
            for key in expired:
                self._pop(key)
        if expired:
            logger.debug("Deleted %d expired refresh token(s)", len(expired))
        return len(expired)

    def delete_by_token(self, token: str) -> bool:
        with self._lock:
            return self._pop(token) is not None

    def claim(self, token: str) -> RefreshToken | None:
        with self._lock:
            record = self._tokens.get(token)
            if record is None or not record.is_valid():
                return None
            return self._pop(token)

    def count_active_for_client(self, client_id: str) -> int:
        with self._lock:
            return sum(1 for k in self._by_client.get(client_id, ()) if self._tokens[k].is_valid())

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
