"""
Client registry: resolves client_id -> Client (credentials + allowed scopes).
Static registry from OAUTH_CLIENTS JSON, or a development fallback when nothing is configured.
"""
import json
import logging
from abc import ABC, abstractmethod

from token_server.config import DEVELOPMENT_CLIENT_SECRET, SUPPORTED_SCOPES
from token_server.models import Client

logger = logging.getLogger(__name__)


class ClientRegistry(ABC):
    development_mode = False

    @abstractmethod
    def find_by_client_id(self, client_id: str) -> Client | None:
        ...

    @abstractmethod
    def find_all(self) -> list[Client]:
        ...

    def validate_credentials(self, client_id: str, client_secret: str | None) -> bool:
        client = self.find_by_client_id(client_id)
        if client is None:
            return False
        return client.validate_credentials(client_secret)


class StaticClientRegistry(ClientRegistry):
    """Clients from configuration. Immutable after construction."""

    def __init__(self, clients: list[Client]):
        self._clients = {c.client_id: c for c in clients}

    def find_by_client_id(self, client_id: str) -> Client | None:
        return self._clients.get(client_id)

    def find_all(self) -> list[Client]:
        return list(self._clients.values())

    @classmethod
    def from_json(cls, raw: str) -> "StaticClientRegistry":
        """
        Parse OAUTH_CLIENTS. Malformed configuration yields an empty registry
        (every lookup fails) instead of an exception.
        """
        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError("OAUTH_CLIENTS must be a JSON array")
            clients = [Client.from_config(entry) for entry in entries]
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Invalid OAUTH_CLIENTS configuration (%s); no clients will be accepted", e)
            return cls([])
        logger.info("Loaded %d OAuth client(s) from configuration", len(clients))
        return cls(clients)


class DevelopmentClientRegistry(ClientRegistry):
    """
    No configuration: any client_id is accepted with secret "development" and all scopes.
    Insecure on purpose; only for local use.
    """

    development_mode = True

    def __init__(self, scopes: tuple[str, ...] = SUPPORTED_SCOPES):
        self._scopes = tuple(scopes)
        logger.warning("OAUTH_CLIENTS not set: running in development mode; any client_id is accepted")

    def find_by_client_id(self, client_id: str) -> Client | None:
        return Client(
            client_id=client_id,
            client_secret=DEVELOPMENT_CLIENT_SECRET,
            allowed_scopes=self._scopes,
        )

    def find_all(self) -> list[Client]:
        return []


def build_client_registry(raw_config: str | None) -> ClientRegistry:
    """Select the registry variant at startup."""
    if raw_config is None or not raw_config.strip():
        return DevelopmentClientRegistry()
    return StaticClientRegistry.from_json(raw_config)
