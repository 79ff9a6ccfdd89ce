"""Per-role rate tiers.

The table is static: one tier per role, looked up by role tag.
"""

from types import MappingProxyType
from typing import Mapping

from acquisitions.app.middleware.security.models import RateTier, Role

WINDOW_SECONDS = 60

RATE_TIERS: Mapping[Role, RateTier] = MappingProxyType({
    Role.GUEST: RateTier(
        name="guest-rate-limit",
        window_seconds=WINDOW_SECONDS,
        max_requests=5,
        message="Guest access. You have a limited rate limit of 5.",
    ),
    Role.USER: RateTier(
        name="user-rate-limit",
        window_seconds=WINDOW_SECONDS,
        max_requests=10,
        message="User access. You have a standard rate limit of 10.",
    ),
    Role.ADMIN: RateTier(
        name="admin-rate-limit",
        window_seconds=WINDOW_SECONDS,
        max_requests=20,
        message="Admin access. You have a higher rate limit of 20.",
    ),
})


def select_tier(role: object) -> RateTier:
    """Return the tier for a role; unknown or missing roles get the guest tier."""
    return RATE_TIERS[Role.parse(role)]
