"""Bot and shield heuristics.

Both checks are pure functions of the request metadata: no state is kept
between requests. Patterns are compiled once at import time and inspected
text is capped so a single evaluation stays bounded.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote_plus

from fastapi import Request

MAX_INSPECT_LENGTH = 4096


@dataclass
class RequestMeta:
    """The request attributes the policy engine looks at."""
    client_ip: str
    method: str = "GET"
    path: str = "/"
    query: str = ""
    user_agent: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: Request, trust_forwarded_for: bool = False) -> "RequestMeta":
        """Build metadata from a Starlette request.

        ``X-Forwarded-For`` is only honoured when the app runs behind a
        trusted proxy; otherwise clients could pick their own bucket.
        """
        client_ip = None
        if trust_forwarded_for:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                client_ip = forwarded.split(",")[0].strip() or None
        if client_ip is None:
            client_ip = request.client.host if request.client else "unknown"

        return cls(
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
            query=request.url.query,
            user_agent=request.headers.get("User-Agent"),
            headers={
                name: request.headers[name]
                for name in ("referer",)
                if name in request.headers
            },
        )


@dataclass
class HeuristicResult:
    triggered: bool
    rule: Optional[str] = None

    @classmethod
    def clean(cls) -> "HeuristicResult":
        return cls(triggered=False)


def _compile(patterns: Iterable[Tuple[str, str]]) -> List[Tuple[str, re.Pattern]]:
    return [(rule, re.compile(pattern, re.IGNORECASE)) for rule, pattern in patterns]


# (rule id, pattern) pairs; checked in order, first match wins
BOT_PATTERNS: List[Tuple[str, str]] = [
    ("curl", r"\bcurl/"),
    ("wget", r"\bwget/"),
    ("python_client", r"python-(requests|urllib|httpx)|\baiohttp/|\bpython/\d"),
    ("http_library", r"go-http-client|okhttp|\bjava/\d|libwww-perl|apache-httpclient|node-fetch"),
    ("headless_browser", r"headlesschrome|phantomjs|selenium|puppeteer|playwright"),
    ("scraper", r"scrapy|httrack|\bzgrab|masscan|nikto|sqlmap"),
    # A standalone token, or a product name ending in bot/crawler/spider with a version
    ("crawler", r"\b(bot|crawler|spider)\b|\w(bot|crawler|spider)[/;]"),
]

# Search engines and link-preview fetchers are welcome
ALLOWED_BOT_PATTERNS: List[str] = [
    r"googlebot",
    r"bingbot",
    r"duckduckbot",
    r"\bslurp\b",
    r"yandexbot",
    r"baiduspider",
    r"facebookexternalhit",
    r"twitterbot",
    r"slackbot",
    r"linkedinbot",
    r"discordbot",
]


class BotDetector:
    """Classifies requests from automated clients by their User-Agent."""

    def __init__(
        self,
        patterns: Iterable[Tuple[str, str]] = BOT_PATTERNS,
        allowed_patterns: Iterable[str] = ALLOWED_BOT_PATTERNS,
    ):
        self._patterns = _compile(patterns)
        allowed = list(allowed_patterns)
        self._allowed = re.compile("|".join(allowed), re.IGNORECASE) if allowed else None

    def check(self, meta: RequestMeta) -> HeuristicResult:
        user_agent = (meta.user_agent or "").strip()[:MAX_INSPECT_LENGTH]
        if not user_agent:
            return HeuristicResult(triggered=True, rule="missing_user_agent")
        if self._allowed is not None and self._allowed.search(user_agent):
            return HeuristicResult.clean()
        for rule, pattern in self._patterns:
            if pattern.search(user_agent):
                return HeuristicResult(triggered=True, rule=rule)
        return HeuristicResult.clean()


SHIELD_PATTERNS: List[Tuple[str, str]] = [
    # SQL injection
    ("sql_injection", r"\bunion\b[\s(]+(all\s+)?\bselect\b"),
    ("sql_injection", r"['\"]\s*\b(or|and)\b\s+['\"]?\w+['\"]?\s*=\s*['\"]?\w+"),
    ("sql_injection", r";\s*\b(drop|truncate|alter)\s+(table|database)\b"),
    ("sql_injection", r"\b(sleep|benchmark|pg_sleep)\s*\(\s*\d+"),
    ("sql_injection", r"\bwaitfor\s+delay\b"),
    ("sql_injection", r"['\"]\s*;?\s*--"),
    # Cross-site scripting
    ("xss", r"<\s*script\b"),
    ("xss", r"javascript\s*:"),
    ("xss", r"<[^>]*\bon(error|load|mouseover|focus|click)\s*="),
    # Path traversal and sensitive files
    ("path_traversal", r"\.\.[/\\]"),
    ("sensitive_file", r"/etc/(passwd|shadow|hosts)\b"),
    ("sensitive_file", r"(^|/)\.(env|git|htaccess|htpasswd)(/|$)"),
    # OS command injection; the command word must stand alone, so "id=3" and "id-id" pass
    ("command_injection", r"(;|\|\|?|&&|`)\s*(cat|ls|id|whoami|uname|wget|curl|nc|bash|sh|rm)(?=\s|$|[;|&`)])"),
    ("command_injection", r"\$\(\s*\w+"),
    # Shellshock
    ("shellshock", r"\(\s*\)\s*\{\s*:?\s*;\s*\}"),
]


# The User-Agent is checked against these instead of SHIELD_PATTERNS
USER_AGENT_PATTERNS: List[Tuple[str, str]] = [
    ("shellshock", r"\(\s*\)\s*\{\s*:?\s*;\s*\}"),
]


def _decode(value: str) -> str:
    # Twice, to catch double-encoded payloads such as %252e%252e
    return unquote_plus(unquote_plus(value[:MAX_INSPECT_LENGTH]))


class Shield:
    """Matches known attack signatures in the URL and selected headers."""

    def __init__(
        self,
        patterns: Iterable[Tuple[str, str]] = SHIELD_PATTERNS,
        user_agent_patterns: Iterable[Tuple[str, str]] = USER_AGENT_PATTERNS,
    ):
        self._patterns = _compile(patterns)
        self._user_agent_patterns = _compile(user_agent_patterns)

    def _targets(self, meta: RequestMeta) -> List[Tuple[str, List[Tuple[str, re.Pattern]]]]:
        targets = [(_decode(meta.path), self._patterns)]
        if meta.query:
            targets.append((_decode(meta.query), self._patterns))
        targets.extend((_decode(v), self._patterns) for v in meta.headers.values())
        if meta.user_agent:
            targets.append((meta.user_agent[:MAX_INSPECT_LENGTH], self._user_agent_patterns))
        return targets

    def check(self, meta: RequestMeta) -> HeuristicResult:
        for text, patterns in self._targets(meta):
            for rule, pattern in patterns:
                if pattern.search(text):
                    return HeuristicResult(triggered=True, rule=rule)
        return HeuristicResult.clean()
