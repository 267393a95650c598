"""End-to-end sign-in against a real Postgres binding."""

import httpx
import pytest
from sqlalchemy import select

from edge_auth.auth import init_auth
from edge_auth.ui import HttpAuthClient

pytestmark = pytest.mark.integration

EMAIL = "pg-user@integration.example.com"


def _client(app, headers=None) -> HttpAuthClient:
    transport = httpx.ASGITransport(app=app)
    return HttpAuthClient(
        "http://testserver",
        client=httpx.AsyncClient(transport=transport, base_url="http://testserver", headers=headers),
    )


@pytest.mark.asyncio
async def test_sign_in_round_trip_stores_geo(app, pg_database, outbox, edge_headers):
    async with _client(app, headers=edge_headers) as client:
        assert (await client.send_one_time_code(EMAIL)).error is None
        result = await client.verify_one_time_code(EMAIL, outbox[-1][1])
        assert result.error is None

        current = (await client.get_session_state()).data
        assert current["user"]["email"] == EMAIL
        assert current["session"]["colo"] == "TXL50-C1"
        assert current["session"]["latitude"] == "52.52000"

        assert (await client.sign_out()).error is None
        assert (await client.get_session_state()).data is None


@pytest.mark.asyncio
async def test_sessions_cascade_with_user(app, pg_database, outbox):
    async with _client(app) as client:
        await client.send_one_time_code(EMAIL)
        await client.verify_one_time_code(EMAIL, outbox[-1][1])

    t = pg_database.tables
    async with pg_database.begin() as conn:
        user_id = (await conn.execute(select(t.user.c.id).where(t.user.c.email == EMAIL))).scalar_one()
        await conn.execute(t.user.delete().where(t.user.c.id == user_id))
        remaining = (await conn.execute(select(t.session).where(t.session.c.user_id == user_id))).all()
    assert remaining == []


@pytest.mark.asyncio
async def test_process_instance_shares_the_pool(pg_database):
    auth = await init_auth()
    assert auth.db.engine is pg_database.engine
