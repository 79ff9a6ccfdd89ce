"""Request policy engine.

The engine decides, for one request, whether it may proceed. The local
implementation runs the bot check, then the shield check, then the
fixed-window counter; the first check that fails decides the reason.
Heuristic denials return before the counter is touched, so blocked
traffic does not eat into the caller's budget.
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from typing import Optional

from acquisitions.app.core.config import settings
from acquisitions.app.core.logging import get_logger
from acquisitions.app.exceptions import PolicyEngineError
from acquisitions.app.middleware.security.backends import WindowStore, create_window_store
from acquisitions.app.middleware.security.heuristics import BotDetector, RequestMeta, Shield
from acquisitions.app.middleware.security.models import Decision, DenialReason, RateTier

logger = get_logger(__name__)


def build_fingerprint(tier: RateTier, client_ip: str) -> str:
    """Build the counter key for a tier and client.

    The tier name is part of the key so callers of different roles from
    one address never share a bucket. The address is hashed so raw IPs are
    not held in the store.
    """
    ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
    return f"{tier.name}:{ip_hash}"


class PolicyEngine(ABC):
    """Abstract policy evaluator.

    Implementations may be local or delegate to a remote decision service;
    the security middleware only depends on this interface.
    """

    _cleanup_task: Optional[asyncio.Task] = None
    _shutdown_event: Optional[asyncio.Event] = None

    @abstractmethod
    async def evaluate(self, fingerprint: str, tier: RateTier, meta: RequestMeta) -> Decision:
        """Decide whether the request may proceed.

        Raises:
            PolicyEngineError: the engine could not reach a decision
        """

    async def cleanup(self) -> None:
        """Drop state for windows that have expired."""

    async def close(self) -> None:
        """Release resources held by the engine."""

    def start_cleanup_task(self, interval_seconds: float) -> None:
        """Start the periodic cleanup of expired windows."""
        if self._cleanup_task is not None:
            return
        self._shutdown_event = asyncio.Event()
        self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval_seconds))
        logger.info(f"Started window cleanup task (every {interval_seconds}s)")

    async def stop_cleanup_task(self) -> None:
        """Stop the periodic cleanup task."""
        if self._cleanup_task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._cleanup_task, timeout=5.0)
        except asyncio.TimeoutError:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        self._cleanup_task = None
        logger.info("Stopped window cleanup task")

    async def _cleanup_loop(self, interval_seconds: float) -> None:
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
            if self._shutdown_event.is_set():
                break
            try:
                await self.cleanup()
            except Exception as e:
                logger.error(f"Error during window cleanup: {e}")


class LocalPolicyEngine(PolicyEngine):
    """In-process engine: heuristics plus a fixed-window counter store."""

    def __init__(
        self,
        store: Optional[WindowStore] = None,
        bot_detector: Optional[BotDetector] = None,
        shield: Optional[Shield] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize the engine.

        Args:
            store: Window counter store (settings-selected store if omitted)
            bot_detector: Bot check; pass None with detection disabled in
                settings to skip it
            shield: Attack-signature check, same convention as bot_detector
            timeout_seconds: Upper bound for one evaluation
        """
        self.store = store if store is not None else create_window_store()
        if bot_detector is None and settings.bot_detection_enabled:
            bot_detector = BotDetector()
        if shield is None and settings.shield_enabled:
            shield = Shield()
        self.bot_detector = bot_detector
        self.shield = shield
        self.timeout_seconds = timeout_seconds or settings.policy_timeout_seconds

    async def evaluate(self, fingerprint: str, tier: RateTier, meta: RequestMeta) -> Decision:
        try:
            return await asyncio.wait_for(
                self._evaluate(fingerprint, tier, meta),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise PolicyEngineError(
                f"Policy evaluation timed out after {self.timeout_seconds}s"
            ) from e
        except PolicyEngineError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected policy engine error: {e}")
            raise PolicyEngineError(str(e)) from e

    async def _evaluate(self, fingerprint: str, tier: RateTier, meta: RequestMeta) -> Decision:
        if self.bot_detector is not None:
            result = self.bot_detector.check(meta)
            if result.triggered:
                return Decision.deny(DenialReason.BOT, rule=result.rule)

        if self.shield is not None:
            result = self.shield.check(meta)
            if result.triggered:
                return Decision.deny(DenialReason.SHIELD, rule=result.rule)

        state = await self.store.hit(fingerprint, tier.window_seconds)
        reset_at = int(state.reset_at)
        if state.count > tier.max_requests:
            return Decision.deny(
                DenialReason.RATE_LIMIT,
                rule=tier.name,
                limit=tier.max_requests,
                remaining=0,
                reset_at=reset_at,
            )

        return Decision.allow(
            limit=tier.max_requests,
            remaining=tier.max_requests - state.count,
            reset_at=reset_at,
        )

    async def cleanup(self) -> None:
        await self.store.cleanup()

    async def close(self) -> None:
        await self.store.close()
