"""Tests for the local policy engine."""

import asyncio
import hashlib
from unittest.mock import AsyncMock, patch

import pytest
import redis

from acquisitions.app.exceptions import PolicyEngineError
from acquisitions.app.middleware.security import (
    RATE_TIERS,
    BotDetector,
    DenialReason,
    LocalPolicyEngine,
    RedisWindowStore,
    RequestMeta,
    Role,
    Shield,
    WindowState,
    WindowStore,
    build_fingerprint,
)

GUEST = RATE_TIERS[Role.GUEST]
USER = RATE_TIERS[Role.USER]
ADMIN = RATE_TIERS[Role.ADMIN]

BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Safari/605.1.15"


def make_meta(ip: str = "203.0.113.7", **overrides) -> RequestMeta:
    values = {"client_ip": ip, "user_agent": BROWSER_UA, "path": "/api/users"}
    values.update(overrides)
    return RequestMeta(**values)


async def evaluate(engine, tier, meta=None):
    meta = meta or make_meta()
    return await engine.evaluate(build_fingerprint(tier, meta.client_ip), tier, meta)


class SlowStore(WindowStore):
    async def hit(self, key, window_seconds):
        await asyncio.sleep(10)
        return WindowState(count=1, window_start=0.0, reset_at=60.0)

    async def cleanup(self):
        pass


class BrokenStore(WindowStore):
    async def hit(self, key, window_seconds):
        raise RuntimeError("disk on fire")

    async def cleanup(self):
        pass


class TestBuildFingerprint:
    """Tests for counter key construction."""

    def test_format(self):
        expected = hashlib.sha256(b"203.0.113.7").hexdigest()[:32]
        assert build_fingerprint(GUEST, "203.0.113.7") == f"guest-rate-limit:{expected}"

    def test_raw_address_is_not_in_key(self):
        assert "203.0.113.7" not in build_fingerprint(USER, "203.0.113.7")

    def test_tiers_do_not_share_keys(self):
        keys = {build_fingerprint(tier, "203.0.113.7") for tier in RATE_TIERS.values()}
        assert len(keys) == 3

    def test_addresses_do_not_share_keys(self):
        assert build_fingerprint(USER, "203.0.113.7") != build_fingerprint(USER, "203.0.113.8")


class TestRateLimiting:
    """Tests for the fixed-window budget per tier."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tier", [GUEST, USER, ADMIN])
    async def test_budget_then_deny(self, policy_engine, tier):
        for i in range(tier.max_requests):
            decision = await evaluate(policy_engine, tier)
            assert decision.allowed is True
            assert decision.remaining == tier.max_requests - i - 1
            assert decision.limit == tier.max_requests

        decision = await evaluate(policy_engine, tier)
        assert decision.allowed is False
        assert decision.reason is DenialReason.RATE_LIMIT
        assert decision.message == "Too many requests"
        assert decision.rule == tier.name
        assert decision.remaining == 0

    @pytest.mark.asyncio
    async def test_window_reopens_after_sixty_seconds(self, policy_engine, clock):
        for _ in range(GUEST.max_requests + 2):
            await evaluate(policy_engine, GUEST)
        clock.at(59)
        assert (await evaluate(policy_engine, GUEST)).allowed is False

        clock.at(60)
        decision = await evaluate(policy_engine, GUEST)
        assert decision.allowed is True
        assert decision.remaining == GUEST.max_requests - 1

    @pytest.mark.asyncio
    async def test_reset_at_is_window_end(self, policy_engine, clock):
        decision = await evaluate(policy_engine, GUEST)
        assert decision.reset_at == int(clock.start + 60)

    @pytest.mark.asyncio
    async def test_clients_are_counted_separately(self, policy_engine):
        for _ in range(GUEST.max_requests):
            await evaluate(policy_engine, GUEST, make_meta(ip="198.51.100.1"))
        assert (await evaluate(policy_engine, GUEST, make_meta(ip="198.51.100.1"))).allowed is False
        assert (await evaluate(policy_engine, GUEST, make_meta(ip="198.51.100.2"))).allowed is True

    @pytest.mark.asyncio
    async def test_role_change_gets_fresh_bucket(self, policy_engine):
        for _ in range(GUEST.max_requests + 1):
            await evaluate(policy_engine, GUEST)
        decision = await evaluate(policy_engine, USER)
        assert decision.allowed is True
        assert decision.remaining == USER.max_requests - 1

    @pytest.mark.asyncio
    async def test_concurrent_burst_admits_exactly_the_budget(self, policy_engine):
        decisions = await asyncio.gather(*[evaluate(policy_engine, USER) for _ in range(25)])
        assert sum(d.allowed for d in decisions) == USER.max_requests
        assert all(d.is_rate_limit for d in decisions if not d.allowed)


class TestHeuristicPrecedence:
    """Tests for check ordering and budget accounting."""

    @pytest.mark.asyncio
    async def test_bot_is_denied(self, policy_engine):
        decision = await evaluate(policy_engine, GUEST, make_meta(user_agent="curl/8.0"))
        assert decision.allowed is False
        assert decision.is_bot
        assert decision.rule == "curl"
        assert decision.limit is None

    @pytest.mark.asyncio
    async def test_shield_is_denied(self, policy_engine):
        decision = await evaluate(policy_engine, GUEST, make_meta(query="id=1' OR '1'='1"))
        assert decision.allowed is False
        assert decision.is_shield
        assert decision.rule == "sql_injection"

    @pytest.mark.asyncio
    async def test_bot_wins_over_shield(self, policy_engine):
        meta = make_meta(user_agent="sqlmap/1.7", query="id=1 UNION SELECT 1")
        assert (await evaluate(policy_engine, GUEST, meta)).is_bot

    @pytest.mark.asyncio
    async def test_heuristics_win_over_exhausted_budget(self, policy_engine):
        for _ in range(GUEST.max_requests + 1):
            await evaluate(policy_engine, GUEST)

        assert (await evaluate(policy_engine, GUEST, make_meta(user_agent="curl/8.0"))).is_bot
        assert (await evaluate(policy_engine, GUEST, make_meta(query="q=<script>"))).is_shield

    @pytest.mark.asyncio
    async def test_heuristic_denials_do_not_consume_budget(self, policy_engine, window_store):
        for _ in range(10):
            await evaluate(policy_engine, GUEST, make_meta(user_agent="curl/8.0"))
            await evaluate(policy_engine, GUEST, make_meta(query="q=<script>"))
        assert len(window_store) == 0

        decision = await evaluate(policy_engine, GUEST)
        assert decision.allowed is True
        assert decision.remaining == GUEST.max_requests - 1

    @pytest.mark.asyncio
    async def test_disabled_heuristics(self, window_store, monkeypatch):
        from acquisitions.app.core.config import settings

        monkeypatch.setattr(settings, "bot_detection_enabled", False)
        monkeypatch.setattr(settings, "shield_enabled", False)
        engine = LocalPolicyEngine(store=window_store)

        decision = await evaluate(engine, GUEST, make_meta(user_agent="curl/8.0", query="q=<script>"))
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_injected_heuristics(self, window_store):
        engine = LocalPolicyEngine(
            store=window_store,
            bot_detector=BotDetector(patterns=[("scanner", r"scanner")], allowed_patterns=[]),
            shield=Shield(patterns=[("forbidden_word", r"forbidden")]),
        )
        assert (await evaluate(engine, GUEST, make_meta(user_agent="scanner/1"))).rule == "scanner"
        assert (await evaluate(engine, GUEST, make_meta(query="x=forbidden"))).rule == "forbidden_word"


class TestEngineFailures:
    """Tests for failing closed."""

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        engine = LocalPolicyEngine(store=SlowStore(), timeout_seconds=0.05)
        with pytest.raises(PolicyEngineError, match="timed out"):
            await evaluate(engine, GUEST)

    @pytest.mark.asyncio
    async def test_unexpected_store_error_is_wrapped(self):
        engine = LocalPolicyEngine(store=BrokenStore())
        with pytest.raises(PolicyEngineError, match="disk on fire"):
            await evaluate(engine, GUEST)

    @pytest.mark.asyncio
    async def test_redis_outage_raises(self):
        client = AsyncMock()
        client.eval.side_effect = redis.ConnectionError("connection refused")
        engine = LocalPolicyEngine(store=RedisWindowStore(redis_client=client))
        with pytest.raises(PolicyEngineError, match="Rate limit store unavailable"):
            await evaluate(engine, GUEST)

    @pytest.mark.asyncio
    async def test_close_closes_store(self):
        store = AsyncMock(spec=WindowStore)
        engine = LocalPolicyEngine(store=store)
        await engine.close()
        store.close.assert_awaited_once()


class TestCleanupTask:
    """Tests for the periodic window cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_delegates_to_store(self):
        store = AsyncMock(spec=WindowStore)
        engine = LocalPolicyEngine(store=store)
        await engine.cleanup()
        store.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_expired_windows_are_dropped(self, policy_engine, window_store, clock):
        await evaluate(policy_engine, GUEST)
        assert len(window_store) == 1

        clock.advance(61)
        policy_engine.start_cleanup_task(0.01)
        await asyncio.sleep(0.1)
        await policy_engine.stop_cleanup_task()

        assert len(window_store) == 0

    @pytest.mark.asyncio
    async def test_runs_repeatedly_until_stopped(self):
        store = AsyncMock(spec=WindowStore)
        engine = LocalPolicyEngine(store=store)

        engine.start_cleanup_task(0.01)
        await asyncio.sleep(0.1)
        await engine.stop_cleanup_task()
        calls = store.cleanup.await_count

        assert calls >= 2
        assert engine._cleanup_task is None
        await asyncio.sleep(0.05)
        assert store.cleanup.await_count == calls

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        engine = LocalPolicyEngine(store=AsyncMock(spec=WindowStore))
        engine.start_cleanup_task(60)
        task = engine._cleanup_task
        engine.start_cleanup_task(60)
        assert engine._cleanup_task is task
        await engine.stop_cleanup_task()
        assert task.done()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        engine = LocalPolicyEngine(store=AsyncMock(spec=WindowStore))
        await engine.stop_cleanup_task()
        assert engine._cleanup_task is None

    @pytest.mark.asyncio
    async def test_store_errors_do_not_stop_the_loop(self):
        store = AsyncMock(spec=WindowStore)
        store.cleanup.side_effect = RuntimeError("disk on fire")
        engine = LocalPolicyEngine(store=store)

        with patch("acquisitions.app.middleware.security.engine.logger") as mock_logger:
            engine.start_cleanup_task(0.01)
            await asyncio.sleep(0.1)
            await engine.stop_cleanup_task()

        assert store.cleanup.await_count >= 2
        assert "disk on fire" in mock_logger.error.call_args[0][0]
