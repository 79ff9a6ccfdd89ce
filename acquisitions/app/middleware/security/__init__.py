"""Request security policy: tiers, window stores, heuristics and engine.

The middleware class lives in ``security.middleware`` and is exported from
``acquisitions.app.middleware``.
"""

from acquisitions.app.middleware.security.models import (
    DENIAL_MESSAGES,
    Decision,
    DenialReason,
    Principal,
    RateTier,
    Role,
    WindowState,
)
from acquisitions.app.middleware.security.tiers import RATE_TIERS, select_tier
from acquisitions.app.middleware.security.backends import (
    InMemoryWindowStore,
    RedisWindowStore,
    WindowStore,
    create_window_store,
)
from acquisitions.app.middleware.security.heuristics import (
    BotDetector,
    HeuristicResult,
    RequestMeta,
    Shield,
)
from acquisitions.app.middleware.security.engine import (
    LocalPolicyEngine,
    PolicyEngine,
    build_fingerprint,
)

__all__ = [
    # Models
    "DENIAL_MESSAGES",
    "Decision",
    "DenialReason",
    "Principal",
    "RateTier",
    "Role",
    "WindowState",
    # Tiers
    "RATE_TIERS",
    "select_tier",
    # Stores
    "WindowStore",
    "InMemoryWindowStore",
    "RedisWindowStore",
    "create_window_store",
    # Heuristics
    "BotDetector",
    "HeuristicResult",
    "RequestMeta",
    "Shield",
    # Engine
    "PolicyEngine",
    "LocalPolicyEngine",
    "build_fingerprint",
]
