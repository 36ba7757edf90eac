"""
Tests for TokenService: client_credentials and refresh_token grants, verification, revocation.
"""
import threading

import pytest

from token_server.client_registry import DevelopmentClientRegistry, StaticClientRegistry
from token_server.errors import AuthenticationError, ClientError, ServerError
from token_server.grants import TokenResult, TokenService
from token_server.models import Client
from token_server.refresh_tokens import InMemoryRefreshTokenStore


class FailingStore(InMemoryRefreshTokenStore):
    def save(self, token):
        raise RuntimeError("store offline")


class RevokeDuringClaimStore(InMemoryRefreshTokenStore):
    """Revokes the record just before the rotation claim, as a concurrent /oauth/revoke would."""

    def claim(self, token):
        record = self.find_by_token(token)
        if record is not None:
            self.revoke(record.token_id)
        return super().claim(token)


def test_generate_scenario(service):
    result = service.generate("client_credentials", "c1", "s1", scope="read")
    assert result.expires_in == 3600
    assert result.token_type == "Bearer"
    assert result.scope == "read"
    assert result.refresh_token

    verified = service.verify(result.access_token)
    assert verified["valid"] is True
    assert verified["payload"]["client_id"] == "c1"
    assert verified["payload"]["scope"] == "read"
    assert service.issuer.has_scope(result.access_token, "read")
    assert not service.issuer.has_scope(result.access_token, "write")


def test_generate_saves_refresh_token(service, store):
    result = service.generate("client_credentials", "c1", "s1", scope="read write")
    record = store.find_by_token(result.refresh_token)
    assert record.client_id == "c1"
    assert record.scope == "read write"
    assert record.is_valid()


def test_generate_without_scope(service, store):
    result = service.generate("client_credentials", "c1", "s1")
    assert result.scope is None
    assert "scope" not in result.to_dict()
    assert store.find_by_token(result.refresh_token).scope is None
    assert "scope" not in service.verify(result.access_token)["payload"]


def test_generate_rejects_other_grant_types(service):
    with pytest.raises(ClientError) as exc_info:
        service.generate("password", "c1", "s1")
    assert exc_info.value.description == "Only client_credentials grant type is supported"
    assert exc_info.value.error == "unsupported_grant_type"


@pytest.mark.parametrize(
    "client_id,secret,message",
    [
        ("nobody", "s1", "Client not found"),
        ("c1", "wrong", "Invalid client credentials"),
        ("c1", None, "Invalid client credentials"),
    ],
)
def test_generate_authentication_failures(service, client_id, secret, message):
    with pytest.raises(AuthenticationError) as exc_info:
        service.generate("client_credentials", client_id, secret)
    assert exc_info.value.description == message
    assert exc_info.value.error == "invalid_client"
    assert exc_info.value.status_code == 401


def test_generate_scope_error_propagates_verbatim(service, store):
    with pytest.raises(ClientError) as exc_info:
        service.generate("client_credentials", "c1", "s1", scope="read write admin")
    assert exc_info.value.description == "Client is not authorized for scopes: admin. Allowed scopes: read, write"
    assert len(store) == 0


def test_generate_with_refresh_tokens_disabled(registry, issuer, store):
    service = TokenService(registry, issuer, store, refresh_token_enabled=False)
    result = service.generate("client_credentials", "c1", "s1", scope="read")
    assert result.refresh_token is None
    assert "refresh_token" not in result.to_dict()
    assert len(store) == 0


def test_certificate_bound_client(issuer, store):
    clients = StaticClientRegistry(
        [Client("mtls", "pw", ("read",), certificate_fingerprint="AA:BB", requires_certificate=True)]
    )
    service = TokenService(clients, issuer, store)
    with pytest.raises(AuthenticationError) as exc_info:
        service.generate("client_credentials", "mtls", "pw")
    assert exc_info.value.description == "Invalid client certificate"
    with pytest.raises(AuthenticationError):
        service.generate("client_credentials", "mtls", "pw", certificate_fingerprint="AACC")
    result = service.generate("client_credentials", "mtls", "pw", certificate_fingerprint="AABB")
    assert result.access_token


def test_refresh_rotation_scenario(service, store):
    t1 = service.generate("client_credentials", "c1", "s1", scope="read").refresh_token
    result = service.refresh("refresh_token", t1)
    t2 = result.refresh_token
    assert t2 and t2 != t1
    assert result.scope == "read"
    assert store.find_by_token(t1) is None
    record = store.find_by_token(t2)
    assert record.client_id == "c1"
    assert record.is_valid()
    assert service.verify(result.access_token)["payload"]["client_id"] == "c1"


def test_refresh_used_token_is_invalid(service):
    t1 = service.generate("client_credentials", "c1", "s1").refresh_token
    service.refresh("refresh_token", t1)
    with pytest.raises(AuthenticationError) as exc_info:
        service.refresh("refresh_token", t1)
    assert exc_info.value.description == "Invalid refresh token"
    assert exc_info.value.error == "invalid_grant"


def test_refresh_without_rotation_keeps_token(registry, issuer, store):
    service = TokenService(registry, issuer, store, refresh_token_rotation=False)
    t1 = service.generate("client_credentials", "c1", "s1", scope="read").refresh_token
    first = service.refresh("refresh_token", t1)
    second = service.refresh("refresh_token", t1)
    assert first.refresh_token is None
    assert second.access_token
    assert store.find_by_token(t1).is_valid()


def test_refresh_expired_token_is_deleted(registry, issuer, store):
    service = TokenService(registry, issuer, store, refresh_token_expires=0)
    token = service.generate("client_credentials", "c1", "s1").refresh_token
    with pytest.raises(AuthenticationError) as exc_info:
        service.refresh("refresh_token", token)
    assert exc_info.value.description == "Refresh token has expired"
    assert store.find_by_token(token) is None


def test_refresh_revoked_token(service, store):
    token = service.generate("client_credentials", "c1", "s1").refresh_token
    store.revoke(store.find_by_token(token).token_id)
    with pytest.raises(AuthenticationError) as exc_info:
        service.refresh("refresh_token", token)
    assert exc_info.value.description == "Refresh token has been revoked"


def test_refresh_revoked_between_check_and_rotation(registry, issuer):
    store = RevokeDuringClaimStore()
    service = TokenService(registry, issuer, store)
    token = service.generate("client_credentials", "c1", "s1", scope="read").refresh_token
    with pytest.raises(AuthenticationError) as exc_info:
        service.refresh("refresh_token", token)
    assert exc_info.value.description == "Refresh token has been revoked"
    assert exc_info.value.error == "invalid_grant"
    assert len(store) == 1
    assert store.find_by_token(token).is_revoked
    assert store.count_active_for_client("c1") == 0


def test_refresh_unknown_token(service):
    with pytest.raises(AuthenticationError) as exc_info:
        service.refresh("refresh_token", "f" * 64)
    assert exc_info.value.description == "Invalid refresh token"


def test_refresh_requires_token_and_grant_type(service):
    with pytest.raises(ClientError) as exc_info:
        service.refresh("refresh_token", None)
    assert exc_info.value.description == "refresh_token is required"
    with pytest.raises(ClientError) as exc_info:
        service.refresh("client_credentials", "abc")
    assert exc_info.value.description == "Only refresh_token grant type is supported for this endpoint"
    assert exc_info.value.error == "unsupported_grant_type"


def test_refresh_scope_cannot_exceed_original(service, store):
    token = service.generate("client_credentials", "c1", "s1", scope="read").refresh_token
    with pytest.raises(ClientError) as exc_info:
        service.refresh("refresh_token", token, scope="admin")
    assert exc_info.value.description == "Requested scope exceeds refresh token scope"
    assert exc_info.value.error == "invalid_scope"
    assert store.find_by_token(token) is not None

    rotated = service.refresh("refresh_token", token)
    assert rotated.scope == "read"
    narrowed = service.refresh("refresh_token", rotated.refresh_token, scope="read")
    assert narrowed.scope == "read"


def test_refresh_can_narrow_scope(service, store):
    token = service.generate("client_credentials", "c1", "s1", scope="read write").refresh_token
    result = service.refresh("refresh_token", token, scope="write")
    assert result.scope == "write"
    assert store.find_by_token(result.refresh_token).scope == "write"


def test_refresh_scope_on_unscoped_token_is_rejected(service):
    token = service.generate("client_credentials", "c1", "s1").refresh_token
    with pytest.raises(ClientError):
        service.refresh("refresh_token", token, scope="read")


def test_concurrent_refresh_has_one_winner(service, store):
    token = service.generate("client_credentials", "c1", "s1", scope="read").refresh_token
    barrier = threading.Barrier(6)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        barrier.wait()
        try:
            result = service.refresh("refresh_token", token)
        except AuthenticationError as e:
            outcome = e.description
        else:
            outcome = result.refresh_token
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    winners = [o for o in outcomes if o != "Invalid refresh token"]
    assert len(winners) == 1
    assert len(store) == 1
    assert store.find_by_token(winners[0]) is not None


def test_verify_invalid(service):
    assert service.verify("garbage") == {"valid": False, "error": "Invalid token"}
    assert service.verify("") == {"valid": False, "error": "Invalid token"}
    assert service.verify(None) == {"valid": False, "error": "Invalid token"}


def test_generate_client_credentials_static(service):
    creds = service.generate_client_credentials()
    assert creds["client_id"].startswith("client_")
    assert creds["client_secret"].startswith("secret_")
    assert service.generate_client_credentials()["client_id"] != creds["client_id"]


def test_generate_client_credentials_development(issuer, store):
    service = TokenService(DevelopmentClientRegistry(), issuer, store)
    creds = service.generate_client_credentials()
    assert creds["client_secret"] == "development"
    result = service.generate("client_credentials", creds["client_id"], creds["client_secret"], scope="admin")
    assert result.scope == "admin"


def test_revoke_refresh_token_own_token(service, store):
    token = service.generate("client_credentials", "c1", "s1").refresh_token
    assert service.revoke_refresh_token("c1", "s1", token) is True
    assert store.find_by_token(token).is_revoked
    with pytest.raises(AuthenticationError) as exc_info:
        service.refresh("refresh_token", token)
    assert exc_info.value.description == "Refresh token has been revoked"


def test_revoke_refresh_token_ignores_other_clients_and_unknown(service, store):
    token = service.generate("client_credentials", "c1", "s1").refresh_token
    assert service.revoke_refresh_token("c2", "s2", token) is False
    assert store.find_by_token(token).is_valid()
    assert service.revoke_refresh_token("c1", "s1", "unknown") is False


def test_revoke_requires_authentication(service):
    token = service.generate("client_credentials", "c1", "s1").refresh_token
    with pytest.raises(AuthenticationError):
        service.revoke_refresh_token("c1", "wrong", token)
    with pytest.raises(AuthenticationError):
        service.revoke_all_refresh_tokens("c1", "wrong")


def test_revoke_all_refresh_tokens(service, store):
    for _ in range(3):
        service.generate("client_credentials", "c1", "s1")
    service.generate("client_credentials", "c2", "s2")
    assert service.revoke_all_refresh_tokens("c1", "s1") == 3
    assert store.count_active_for_client("c1") == 0
    assert store.count_active_for_client("c2") == 1
    assert service.revoke_all_refresh_tokens("c1", "s1") == 0


def test_sweep_expired(registry, issuer, store):
    expired_service = TokenService(registry, issuer, store, refresh_token_expires=0)
    expired_service.generate("client_credentials", "c1", "s1")
    TokenService(registry, issuer, store).generate("client_credentials", "c1", "s1")
    assert expired_service.sweep_expired() == 1
    assert len(store) == 1


def test_store_failure_becomes_server_error(registry, issuer):
    service = TokenService(registry, issuer, FailingStore())
    with pytest.raises(ServerError) as exc_info:
        service.generate("client_credentials", "c1", "s1")
    assert exc_info.value.status_code == 500
    assert exc_info.value.error == "server_error"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_token_result_to_dict():
    assert TokenResult("at", 60).to_dict() == {"access_token": "at", "token_type": "Bearer", "expires_in": 60}
    full = TokenResult("at", 60, refresh_token="rt", scope="read").to_dict()
    assert full["refresh_token"] == "rt"
    assert full["scope"] == "read"
