"""Security policy data models.

Value types shared by the identity resolver, the tier table, the policy
engine and the middleware.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    GUEST = "guest"
    USER = "user"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Map a raw role claim to a Role, defaulting to guest."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.GUEST


@dataclass(frozen=True)
class Principal:
    """Caller identity derived from the session token for one request."""
    id: Optional[int] = None
    email: Optional[str] = None
    role: Role = Role.GUEST

    @classmethod
    def guest(cls) -> "Principal":
        return cls()

    @property
    def is_guest(self) -> bool:
        return self.role is Role.GUEST


@dataclass(frozen=True)
class RateTier:
    """A named fixed-window rate policy."""
    name: str
    window_seconds: int
    max_requests: int
    message: str


class DenialReason(str, Enum):
    NONE = "none"
    BOT = "bot"
    SHIELD = "shield"
    RATE_LIMIT = "rateLimit"


DENIAL_MESSAGES = {
    DenialReason.BOT: "Automated requests are not allowed",
    DenialReason.SHIELD: "Request blocked by security policy",
    DenialReason.RATE_LIMIT: "Too many requests",
}


@dataclass
class Decision:
    """Outcome of evaluating one request against the policy."""
    allowed: bool
    reason: DenialReason = DenialReason.NONE
    message: str = ""
    rule: Optional[str] = None
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[int] = None

    @classmethod
    def allow(cls, limit: int, remaining: int, reset_at: int) -> "Decision":
        return cls(allowed=True, limit=limit, remaining=remaining, reset_at=reset_at)

    @classmethod
    def deny(cls, reason: DenialReason, rule: Optional[str] = None, **kwargs) -> "Decision":
        return cls(allowed=False, reason=reason, message=DENIAL_MESSAGES[reason], rule=rule, **kwargs)

    @property
    def is_bot(self) -> bool:
        return self.reason is DenialReason.BOT

    @property
    def is_shield(self) -> bool:
        return self.reason is DenialReason.SHIELD

    @property
    def is_rate_limit(self) -> bool:
        return self.reason is DenialReason.RATE_LIMIT


@dataclass
class WindowState:
    """Counter state returned by a window store after one hit."""
    count: int
    window_start: float
    reset_at: float
