"""Tests for the workload registry."""

from datetime import datetime, timezone

import pytest

from bothost.exceptions import ConflictError, ValidationError
from bothost.types import AuthCode, Bot, BotStatus, Tier


def _bot(name="echo", owner="t1"):
    return Bot(owner=owner, name=name, path=f"/srv/bots/{owner}/{name}")


# ── Bots ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_and_get_bot(registry):
    bot = await registry.create_bot(_bot())
    stored = await registry.get_bot(bot.id)

    assert stored.name == "echo"
    assert stored.owner == "t1"
    assert stored.status == BotStatus.STOPPED
    assert stored.created_at == bot.created_at
    assert stored.last_started is None


@pytest.mark.asyncio
async def test_duplicate_name_per_owner(registry):
    await registry.create_bot(_bot())
    with pytest.raises(ConflictError):
        await registry.create_bot(_bot())
    # Same name under another owner is fine.
    await registry.create_bot(_bot(owner="t2"))


@pytest.mark.asyncio
async def test_find_bot_is_owner_scoped(registry):
    bot = await registry.create_bot(_bot())
    assert (await registry.find_bot(bot.id, "t1")).id == bot.id
    assert await registry.find_bot(bot.id, "t2") is None
    assert (await registry.find_bot_by_name("t1", "echo")).id == bot.id


@pytest.mark.asyncio
async def test_list_and_count(registry):
    a = await registry.create_bot(_bot("a"))
    await registry.create_bot(_bot("b"))
    await registry.create_bot(_bot("c", owner="t2"))
    await registry.set_status(a.id, BotStatus.RUNNING)

    assert [b.name for b in await registry.list_bots("t1")] == ["a", "b"]
    assert await registry.count_bots() == 3
    assert await registry.count_bots(owner="t1") == 2
    assert await registry.count_bots(status=BotStatus.RUNNING) == 1
    assert await registry.count_bots(owner="t2", status=BotStatus.RUNNING) == 0


@pytest.mark.asyncio
async def test_set_status_records_timestamps(registry):
    bot = await registry.create_bot(_bot())
    started = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    assert await registry.set_status(bot.id, BotStatus.RUNNING, started)
    stored = await registry.get_bot(bot.id)
    assert stored.status == BotStatus.RUNNING
    assert stored.last_started == started

    await registry.set_status(bot.id, BotStatus.STOPPED)
    stored = await registry.get_bot(bot.id)
    assert stored.status == BotStatus.STOPPED
    assert stored.last_stopped is not None
    assert stored.last_started == started


@pytest.mark.asyncio
async def test_set_status_unknown_bot(registry):
    assert await registry.set_status("ghost", BotStatus.STOPPED) is False


@pytest.mark.asyncio
async def test_reset_running(registry):
    a = await registry.create_bot(_bot("a"))
    await registry.create_bot(_bot("b"))
    await registry.set_status(a.id, BotStatus.RUNNING)

    assert await registry.reset_running() == 1
    assert await registry.count_bots(status=BotStatus.RUNNING) == 0


@pytest.mark.asyncio
async def test_delete_bot(registry):
    bot = await registry.create_bot(_bot())
    assert await registry.delete_bot(bot.id) is True
    assert await registry.get_bot(bot.id) is None
    assert await registry.delete_bot(bot.id) is False


# ── Tenants ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_find_or_create_tenant_is_idempotent(registry):
    first = await registry.find_or_create_tenant("1001", "alice", "a.png")
    second = await registry.find_or_create_tenant("1001", "alice-renamed")

    assert first.id == second.id
    assert second.username == "alice"
    assert first.tier == Tier.FREE
    assert await registry.count_tenants() == 1


@pytest.mark.asyncio
async def test_set_tier(registry):
    tenant = await registry.find_or_create_tenant("1001", "alice")
    assert await registry.set_tier(tenant.id, "premium")

    stored = await registry.get_tenant(tenant.id)
    assert stored.tier == Tier.PREMIUM
    assert stored.bot_limit == 5


# ── Login codes ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_consume_code_once(registry):
    code = AuthCode(code="ABC234", external_id="1001", username="alice")
    await registry.replace_code(code)

    found = await registry.find_unused_code("ABC234")
    assert found.external_id == "1001"

    assert await registry.consume_code(found) is True
    assert await registry.consume_code(found) is False
    assert await registry.find_unused_code("ABC234") is None


@pytest.mark.asyncio
async def test_set_unknown_tier_rejected(registry):
    tenant = await registry.find_or_create_tenant("1001", "alice")
    with pytest.raises(ValidationError):
        await registry.set_tier(tenant.id, "platinum")


@pytest.mark.asyncio
async def test_create_bot_respects_limit(registry):
    await registry.create_bot(_bot("one"), limit=1)
    with pytest.raises(ConflictError, match="limit"):
        await registry.create_bot(_bot("two"), limit=1)
    assert await registry.count_bots(owner="t1") == 1
    # Other owners have their own count.
    await registry.create_bot(_bot("one", owner="t2"), limit=1)


@pytest.mark.asyncio
async def test_replace_code_voids_older_codes(registry):
    await registry.replace_code(AuthCode(code="AAAAAA", external_id="1001"))
    assert await registry.replace_code(AuthCode(code="BBBBBB", external_id="1001")) is True

    assert await registry.find_unused_code("AAAAAA") is None
    assert (await registry.find_unused_code("BBBBBB")).external_id == "1001"


@pytest.mark.asyncio
async def test_replace_code_refuses_live_code_of_another_identity(registry):
    await registry.replace_code(AuthCode(code="AAAAAA", external_id="2002"))
    await registry.replace_code(AuthCode(code="CCCCCC", external_id="1001"))

    assert await registry.replace_code(AuthCode(code="AAAAAA", external_id="1001")) is False
    # Nothing changed for either identity.
    assert (await registry.find_unused_code("AAAAAA")).external_id == "2002"
    assert (await registry.find_unused_code("CCCCCC")).external_id == "1001"
