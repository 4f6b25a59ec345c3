"""Tests for shared types."""

from bothost.types import Tenant, Tier, bot_limit, new_id


def test_tier_limits():
    assert bot_limit(Tier.FREE) == 1
    assert bot_limit("premium") == 5
    assert bot_limit(Tier.ULTIMATE) == 10


def test_unknown_tier_gets_free_limit():
    assert bot_limit("platinum") == 1


def test_tenant_bot_limit():
    assert Tenant(external_id="1", tier=Tier.PREMIUM).bot_limit == 5


def test_new_id_is_unique():
    assert len({new_id() for _ in range(100)}) == 100
