from unittest.mock import AsyncMock, MagicMock, patch

from httpx import AsyncClient


def _engine(ok: bool) -> MagicMock:
    conn = AsyncMock()
    if not ok:
        conn.execute.side_effect = ConnectionError("db down")
    engine = MagicMock()
    engine.connect.return_value.__aenter__.return_value = conn
    return engine


async def test_health_ok(client: AsyncClient):
    with (
        patch("app.api.v1.health.engine", _engine(True)),
        patch("app.api.v1.health.aioredis.from_url", return_value=AsyncMock()),
    ):
        resp = await client.get("/api/v1/health")
    assert resp.json() == {"status": "ok", "database": "ok", "redis": "ok"}


async def test_health_degraded_without_redis(client: AsyncClient):
    redis = AsyncMock()
    redis.ping.side_effect = ConnectionError("refused")
    with (
        patch("app.api.v1.health.engine", _engine(True)),
        patch("app.api.v1.health.aioredis.from_url", return_value=redis),
    ):
        resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["redis"] == "error"
