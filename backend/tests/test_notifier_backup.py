"""Tests for the audit-log analytics sink and the Redis backup store."""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from app.services.onboarding.backup import RedisProgressBackupStore, backup_key
from app.services.onboarding.notifier import AuditLogNotifier


class TestAuditLogNotifier:
    @pytest.mark.asyncio
    async def test_records_onboarding_event(self):
        db = MagicMock()
        session_id, user_id = uuid.uuid4(), uuid.uuid4()
        structlog.contextvars.bind_contextvars(correlation_id="req-123")
        try:
            with patch("app.services.onboarding.notifier.log_event", new_callable=AsyncMock) as mock_log:
                await AuditLogNotifier(db).record(
                    "session_started",
                    {"path_name": "Basics"},
                    user_id=str(user_id),
                    session_id=str(session_id),
                )
        finally:
            structlog.contextvars.clear_contextvars()

        db.begin_nested.assert_called_once()
        kwargs = mock_log.await_args.kwargs
        assert kwargs["category"] == "onboarding"
        assert kwargs["action"] == "session_started"
        assert kwargs["actor_id"] == user_id
        assert kwargs["session_id"] == session_id
        assert kwargs["organization_id"] is None
        assert kwargs["correlation_id"] == "req-123"
        assert kwargs["payload"] == {"path_name": "Basics"}


class TestRedisProgressBackupStore:
    @pytest.mark.asyncio
    async def test_save_uses_ttl(self):
        client = AsyncMock()
        with patch("app.services.onboarding.backup.aioredis.from_url", return_value=client):
            store = RedisProgressBackupStore(redis_url="redis://cache:6379/1", ttl_seconds=60)
            await store.save("s1", '{"session_id": "s1"}')

        client.setex.assert_awaited_once_with(backup_key("s1"), 60, '{"session_id": "s1"}')
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_load_and_delete(self):
        client = AsyncMock()
        client.get.return_value = "snapshot"
        with patch("app.services.onboarding.backup.aioredis.from_url", return_value=client):
            store = RedisProgressBackupStore(redis_url="redis://cache:6379/1")
            assert await store.load("s1") == "snapshot"
            await store.delete("s1")

        client.get.assert_awaited_once_with("onboarding_backup:s1")
        client.delete.assert_awaited_once_with("onboarding_backup:s1")
        assert client.aclose.await_count == 2

    @pytest.mark.asyncio
    async def test_client_closed_on_failure(self):
        client = AsyncMock()
        client.get.side_effect = ConnectionError("redis down")
        with patch("app.services.onboarding.backup.aioredis.from_url", return_value=client):
            with pytest.raises(ConnectionError):
                await RedisProgressBackupStore().load("s1")
        client.aclose.assert_awaited_once()
