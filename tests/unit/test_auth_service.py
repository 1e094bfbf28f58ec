"""Unit tests for AuthService.

Runs the credential lifecycle against the in-memory store and revocation
index, with a manually advanced clock.
"""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from taskauth.models.user import Role
from taskauth.services.auth_service import AuthService, validate_registration
from taskauth.services.errors import (
    BadCredentialsError,
    BadSignatureError,
    ConflictEmailError,
    DeadlineExceededError,
    ExpiredCredentialError,
    InvalidCredentialError,
    NotFoundError,
    RevokedCredentialError,
    StorageError,
    ValidationFailedError,
)

PASSWORD = "correct-horse-battery"


@pytest.fixture
def service(container) -> AuthService:
    return container.auth_service


async def _register_and_login(service, email="alice@example.com"):
    user = await service.register(email, "alice", PASSWORD)
    tokens = await service.login(email, PASSWORD)
    return user, tokens


# ---------------------------------------------------------------------------
# register
# ---------------------------------------------------------------------------

class TestValidateRegistration:
    """Tests for registration input rules."""

    @pytest.mark.parametrize(
        "email,username,password",
        [
            ("no-at-sign.example.com", "alice", PASSWORD),
            ("alice@localhost", "alice", PASSWORD),
            ("alice@example.com", "   ", PASSWORD),
            ("alice@example.com", "a" * 101, PASSWORD),
            ("alice@example.com", "alice", "short"),
            ("alice@example.com", "alice", "é" * 37),
            ("a" * 400 + "@example.com", "alice", PASSWORD),
        ],
    )
    def test_rejects_invalid_input(self, email, username, password):
        with pytest.raises(ValidationFailedError):
            validate_registration(email, username, password)

    def test_accepts_minimum_password(self):
        validate_registration("alice@example.com", "alice", "12345678")


class TestRegister:
    """Tests for AuthService.register."""

    async def test_creates_user_with_role_user(self, service, clock):
        user = await service.register("Alice@Example.com", " alice ", PASSWORD)

        assert user.email == "alice@example.com"
        assert user.username == "alice"
        assert user.role == Role.USER
        assert user.created_at == clock.now()

    async def test_password_is_hashed(self, service):
        user = await service.register("alice@example.com", "alice", PASSWORD)

        assert user.password_hash != PASSWORD
        assert user.password_hash.startswith("$2b$")

    async def test_duplicate_email_conflicts_case_insensitively(self, service):
        await service.register("alice@example.com", "alice", PASSWORD)

        with pytest.raises(ConflictEmailError):
            await service.register("ALICE@example.com", "alice2", PASSWORD)

    async def test_short_password_rejected_before_store(self, service, container):
        with pytest.raises(ValidationFailedError):
            await service.register("alice@example.com", "alice", "short")

        with pytest.raises(NotFoundError):
            await container.store.find_user_by_email("alice@example.com")


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------

class TestLogin:
    """Tests for AuthService.login."""

    async def test_returns_token_pair(self, service, container):
        user, tokens = await _register_and_login(service)

        assert tokens.token_type == "bearer"
        assert tokens.expires_in == container.codec.access_ttl_seconds
        principal = await service.authenticate(tokens.access_token)
        assert principal.user_id == user.id
        assert principal.role == Role.USER

    async def test_refresh_handle_is_persisted(self, service, container):
        user, tokens = await _register_and_login(service)

        record = await container.store.find_refresh(tokens.refresh_token)
        assert record.user_id == user.id
        assert record.revoked is False

    async def test_email_is_case_insensitive(self, service):
        await service.register("alice@example.com", "alice", PASSWORD)

        tokens = await service.login("ALICE@EXAMPLE.COM", PASSWORD)
        assert tokens.access_token

    async def test_wrong_password(self, service):
        await service.register("alice@example.com", "alice", PASSWORD)

        with pytest.raises(BadCredentialsError):
            await service.login("alice@example.com", "wrong-password")

    async def test_unknown_email_spends_a_hash_check(self, service, container):
        with patch.object(
            container.hasher, "verify", new_callable=AsyncMock, return_value=False
        ) as mock_verify:
            with pytest.raises(BadCredentialsError):
                await service.login("nobody@example.com", PASSWORD)

        mock_verify.assert_called_once()

    async def test_unknown_email_and_wrong_password_do_equal_hasher_work(
        self, service, container
    ):
        await service.register("alice@example.com", "alice", PASSWORD)
        assert service._dummy_hash.startswith("$2b$")

        with patch.object(
            container.hasher, "hash", new_callable=AsyncMock
        ) as mock_hash, patch.object(
            container.hasher, "verify", new_callable=AsyncMock, return_value=False
        ) as mock_verify:
            with pytest.raises(BadCredentialsError):
                await service.login("nobody@example.com", PASSWORD)
            unknown_calls = (mock_hash.await_count, mock_verify.await_count)

            with pytest.raises(BadCredentialsError):
                await service.login("alice@example.com", "wrong-password")
            wrong_calls = (
                mock_hash.await_count - unknown_calls[0],
                mock_verify.await_count - unknown_calls[1],
            )

        assert unknown_calls == (0, 1)
        assert wrong_calls == unknown_calls

    async def test_unknown_and_wrong_password_look_identical(self, service):
        await service.register("alice@example.com", "alice", PASSWORD)

        with pytest.raises(BadCredentialsError) as unknown:
            await service.login("nobody@example.com", PASSWORD)
        with pytest.raises(BadCredentialsError) as wrong:
            await service.login("alice@example.com", "wrong-password")

        assert unknown.value.message == wrong.value.message


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------

class TestRefresh:
    """Tests for refresh rotation."""

    async def test_rotates_pair(self, service, container):
        user, tokens = await _register_and_login(service)

        rotated = await service.refresh(tokens.refresh_token)

        assert rotated.refresh_token != tokens.refresh_token
        assert rotated.access_token != tokens.access_token
        assert (await container.store.find_refresh(tokens.refresh_token)).revoked is True
        assert (await service.authenticate(rotated.access_token)).user_id == user.id

    async def test_reuse_is_invalid(self, service):
        _, tokens = await _register_and_login(service)
        await service.refresh(tokens.refresh_token)

        with pytest.raises(InvalidCredentialError):
            await service.refresh(tokens.refresh_token)

    async def test_unknown_handle_is_invalid(self, service):
        with pytest.raises(InvalidCredentialError):
            await service.refresh("not-a-real-handle")

    async def test_expired_handle(self, service, container, clock):
        _, tokens = await _register_and_login(service)

        clock.advance(container.settings.refresh_ttl_seconds)

        with pytest.raises(ExpiredCredentialError):
            await service.refresh(tokens.refresh_token)

    async def test_handle_of_deleted_user_is_invalid(self, service, container):
        _, tokens = await _register_and_login(service)
        record = await container.store.find_refresh(tokens.refresh_token)
        orphan = record.model_copy(update={"token": "orphan", "user_id": uuid4()})
        await container.store.save_refresh(orphan)

        with pytest.raises(InvalidCredentialError):
            await service.refresh("orphan")

    async def test_works_after_access_token_expired(self, service, container, clock):
        _, tokens = await _register_and_login(service)
        clock.advance(container.codec.access_ttl_seconds + 1)

        with pytest.raises(ExpiredCredentialError):
            await service.authenticate(tokens.access_token)

        rotated = await service.refresh(tokens.refresh_token)
        assert await service.authenticate(rotated.access_token)

    async def test_concurrent_refresh_has_exactly_one_winner(self, service):
        _, tokens = await _register_and_login(service)

        results = await asyncio.gather(
            *(service.refresh(tokens.refresh_token) for _ in range(10)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, InvalidCredentialError) for e in losers)

    async def test_role_change_reaches_new_access_token(self, service):
        user, tokens = await _register_and_login(service)
        await service.change_role(user.id, Role.ADMIN)

        old = await service.authenticate(tokens.access_token)
        rotated = await service.refresh(tokens.refresh_token)
        new = await service.authenticate(rotated.access_token)

        assert old.role == Role.USER
        assert new.role == Role.ADMIN


# ---------------------------------------------------------------------------
# logout / authenticate
# ---------------------------------------------------------------------------

class TestLogout:
    """Tests for AuthService.logout."""

    async def test_revokes_access_and_refresh(self, service, container):
        _, tokens = await _register_and_login(service)

        await service.logout(tokens.access_token, tokens.refresh_token)

        with pytest.raises(RevokedCredentialError):
            await service.authenticate(tokens.access_token)
        with pytest.raises(InvalidCredentialError):
            await service.refresh(tokens.refresh_token)

    async def test_is_idempotent(self, service):
        _, tokens = await _register_and_login(service)

        await service.logout(tokens.access_token, tokens.refresh_token)
        await service.logout(tokens.access_token, tokens.refresh_token)

    async def test_expired_access_still_revokes_refresh(self, service, container, clock):
        _, tokens = await _register_and_login(service)
        clock.advance(container.codec.access_ttl_seconds)

        await service.logout(tokens.access_token, tokens.refresh_token)

        assert (await container.store.find_refresh(tokens.refresh_token)).revoked is True

    async def test_unknown_refresh_handle_is_ignored(self, service):
        _, tokens = await _register_and_login(service)

        await service.logout(tokens.access_token, "unknown-handle")

        with pytest.raises(RevokedCredentialError):
            await service.authenticate(tokens.access_token)

    async def test_revocation_index_failure_still_revokes_refresh(self, service, container):
        _, tokens = await _register_and_login(service)

        with patch.object(
            container.revocations, "revoke", new_callable=AsyncMock, side_effect=StorageError()
        ):
            with pytest.raises(StorageError):
                await service.logout(tokens.access_token, tokens.refresh_token)

        assert (await container.store.find_refresh(tokens.refresh_token)).revoked is True
        with pytest.raises(InvalidCredentialError):
            await service.refresh(tokens.refresh_token)

    async def test_refresh_store_failure_still_revokes_access(self, service, container):
        _, tokens = await _register_and_login(service)

        with patch.object(
            container.store, "revoke_refresh", new_callable=AsyncMock, side_effect=StorageError()
        ):
            with pytest.raises(StorageError):
                await service.logout(tokens.access_token, tokens.refresh_token)

        with pytest.raises(RevokedCredentialError):
            await service.authenticate(tokens.access_token)

    async def test_other_sessions_survive(self, service):
        await service.register("alice@example.com", "alice", PASSWORD)
        first = await service.login("alice@example.com", PASSWORD)
        second = await service.login("alice@example.com", PASSWORD)

        await service.logout(first.access_token, first.refresh_token)

        assert await service.authenticate(second.access_token)
        assert await service.refresh(second.refresh_token)


class TestAuthenticate:
    """Tests for AuthService.authenticate."""

    async def test_forged_token(self, service):
        _, tokens = await _register_and_login(service)
        forged = tokens.access_token[:-2] + ("AA" if not tokens.access_token.endswith("AA") else "BB")

        with pytest.raises(BadSignatureError):
            await service.authenticate(forged)

    async def test_revocation_lookup_failure_fails_closed(self, service, container):
        _, tokens = await _register_and_login(service)

        with patch.object(
            container.revocations, "is_revoked", new_callable=AsyncMock, side_effect=StorageError()
        ):
            with pytest.raises(StorageError):
                await service.authenticate(tokens.access_token)


# ---------------------------------------------------------------------------
# deadlines
# ---------------------------------------------------------------------------

class TestDeadlines:
    """Operations honor the caller's timeout."""

    async def test_slow_store_exceeds_deadline(self, service, container):
        async def slow_find(email):
            await asyncio.sleep(1)

        with patch.object(container.store, "find_user_by_email", side_effect=slow_find):
            with pytest.raises(DeadlineExceededError):
                await service.login("alice@example.com", PASSWORD, timeout=0.01)

    async def test_fast_operation_within_deadline(self, service):
        user = await service.register("alice@example.com", "alice", PASSWORD, timeout=5)
        assert user.email == "alice@example.com"


# ---------------------------------------------------------------------------
# user management
# ---------------------------------------------------------------------------

class TestUserManagement:
    """Tests for get_user, change_role and ensure_admin."""

    async def test_get_user(self, service):
        user = await service.register("alice@example.com", "alice", PASSWORD)

        assert (await service.get_user(user.id)).id == user.id

    async def test_get_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            await service.get_user(uuid4())

    async def test_change_role(self, service, clock):
        user = await service.register("alice@example.com", "alice", PASSWORD)
        clock.advance(10)

        updated = await service.change_role(user.id, Role.ADMIN)

        assert updated.role == Role.ADMIN
        assert updated.updated_at == clock.now()
        assert (await service.get_user(user.id)).role == Role.ADMIN

    async def test_ensure_admin_creates_admin(self, service):
        admin = await service.ensure_admin("root@example.com", "root", PASSWORD)

        assert admin.role == Role.ADMIN
        tokens = await service.login("root@example.com", PASSWORD)
        assert (await service.authenticate(tokens.access_token)).role == Role.ADMIN

    async def test_ensure_admin_promotes_existing_user(self, service):
        user = await service.register("root@example.com", "root", PASSWORD)

        admin = await service.ensure_admin("root@example.com", "root", "another-password")

        assert admin.id == user.id
        assert admin.role == Role.ADMIN
