"""Proxy parsing and round-robin rotation.

Accepted forms: ``host:port``, ``http://host:port``, ``https://host:port``,
``socks5://host:port``, each optionally with ``user:pass@`` credentials.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence
from urllib.parse import unquote, urlsplit

SUPPORTED_PROTOCOLS = ("http", "https", "socks5")
DEFAULT_PORTS = {"http": 80, "https": 443, "socks5": 1080}

_SCHEME_RE = re.compile(r"^[\w+.-]+://")


class ProxyParseError(ValueError):
    """Raised for an empty, malformed or unsupported proxy string."""


@dataclass(frozen=True)
class ProxyConfig:
    protocol: str
    host: str
    port: int
    username: str | None = None
    password: str | None = None

    @property
    def server(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.protocol}://{host}:{self.port}"

    def to_playwright(self) -> dict[str, str]:
        """Return the ``proxy`` option for a Playwright browser context."""
        config = {"server": self.server}
        if self.username:
            config["username"] = self.username
        if self.password:
            config["password"] = self.password
        return config

    def __str__(self) -> str:
        # Credentials stay out of logs.
        return self.server


def parse_proxy_config(raw: str) -> ProxyConfig:
    """Parse ``[scheme://][user:pass@]host[:port]`` into a :class:`ProxyConfig`."""
    value = raw.strip() if isinstance(raw, str) else ""
    if not value:
        raise ProxyParseError("Empty proxy string")

    if not _SCHEME_RE.match(value):
        value = f"http://{value}"

    try:
        parsed = urlsplit(value)
    except ValueError as exc:
        raise ProxyParseError(f"Invalid proxy URL: {raw}") from exc

    protocol = parsed.scheme.lower()
    if protocol not in SUPPORTED_PROTOCOLS:
        raise ProxyParseError(
            f"Unsupported proxy protocol: {protocol}. Use http, https, or socks5"
        )

    try:
        port = parsed.port
    except ValueError as exc:
        raise ProxyParseError(f"Invalid proxy URL: {raw}") from exc

    host = parsed.hostname
    if not host:
        raise ProxyParseError(f"Invalid proxy URL: {raw}")

    return ProxyConfig(
        protocol=protocol,
        host=host,
        port=port or DEFAULT_PORTS[protocol],
        username=unquote(parsed.username) if parsed.username else None,
        password=unquote(parsed.password) if parsed.password else None,
    )


def normalize_proxy_input(proxy: str | Sequence[str]) -> list[ProxyConfig]:
    """Parse a single proxy string or a list of them, preserving order."""
    items = [proxy] if isinstance(proxy, str) else list(proxy)
    return [parse_proxy_config(item) for item in items]


class ProxyPool:
    """Round-robin rotation over a fixed, non-empty list of proxies.

    ``get_next`` reads and advances the cursor in one synchronous step, so
    concurrent coroutines never observe the same cursor value.
    """

    def __init__(self, proxy: str | Sequence[str]) -> None:
        self._configs = tuple(normalize_proxy_input(proxy))
        if not self._configs:
            raise ProxyParseError("At least one proxy is required")
        self._index = 0

    @property
    def size(self) -> int:
        return len(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    @property
    def configs(self) -> tuple[ProxyConfig, ...]:
        return self._configs

    def get_next(self) -> ProxyConfig:
        config = self._configs[self._index]
        self._index = (self._index + 1) % len(self._configs)
        return config

    def reset(self) -> None:
        """Rewind the rotation to the first proxy."""
        self._index = 0

    def drain(self) -> list[ProxyConfig]:
        """Return one full rotation starting at the current cursor."""
        return [self.get_next() for _ in range(self.size)]
