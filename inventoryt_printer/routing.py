from __future__ import annotations

"""Parsing and routing of inventoryt-printer:// activation URLs.

Recognized forms:
- inventoryt-printer://test or inventoryt-printer:///test (connection test)
- inventoryt-printer://config?url=<endpoint> (set the test endpoint)
- inventoryt-printer://?id=<itemId>&name=<itemName> or any other path (print)
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Union
from urllib.parse import parse_qsl, unquote, urlsplit

SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
BAD_PERCENT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")

TEST_TARGET = "test"
CONFIG_TARGET = "config"


class ParseError(ValueError):
    """Raised when an activation argument is not a syntactically valid URI."""


@dataclass(frozen=True)
class ActivationRequest:
    """A parsed activation URL.

    ``host`` is lower-cased and ``path`` has its leading and trailing slashes
    removed. Only the first value of a repeated query key is kept.
    """

    raw: str
    scheme: str
    host: str
    path: str
    query: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class ConnectionTestCommand:
    """Run the connectivity test against the configured endpoint."""


@dataclass(frozen=True)
class ConfigCommand:
    url: str | None


@dataclass(frozen=True)
class PrintCommand:
    item_id: str
    item_name: str


@dataclass(frozen=True)
class UnknownCommand:
    """Placeholder for command types this version cannot handle."""


Command = Union[ConnectionTestCommand, ConfigCommand, PrintCommand, UnknownCommand]


def _parse_query(query: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for key, value in parse_qsl(query, keep_blank_values=True, errors="replace"):
        values.setdefault(key, value)
    return values


def parse_activation(raw: str) -> ActivationRequest:
    """Parse an activation argument into an ActivationRequest.

    Raises:
        ParseError: If the input has no scheme separator, contains control
            characters, or carries a malformed percent escape. Escapes that
            decode to invalid UTF-8 become U+FFFD instead.
    """
    if CONTROL_RE.search(raw):
        raise ParseError(f"invalid control character in URL {raw!r}")
    if BAD_PERCENT_RE.search(raw):
        raise ParseError(f"invalid URL escape in {raw!r}")
    scheme, separator, _ = raw.partition(":")
    if not separator or not SCHEME_RE.match(scheme):
        raise ParseError(f"missing protocol scheme in {raw!r}")

    try:
        parts = urlsplit(raw)
        query = _parse_query(parts.query)
        path = unquote(parts.path, errors="replace")
    except ValueError as exc:
        raise ParseError(f"invalid URL {raw!r}: {exc}") from exc

    host = parts.netloc.rpartition("@")[2]
    return ActivationRequest(
        raw=raw,
        scheme=parts.scheme,
        host=host.lower(),
        path=path.strip("/"),
        query=MappingProxyType(query),
    )


def route(request: ActivationRequest) -> Command:
    """Map a parsed request to a command; the first matching rule wins."""
    if request.path == TEST_TARGET or request.host == TEST_TARGET:
        return ConnectionTestCommand()
    if request.path == CONFIG_TARGET or request.host == CONFIG_TARGET:
        return ConfigCommand(url=request.query.get("url") or None)
    return PrintCommand(
        item_id=request.query.get("id", ""),
        item_name=request.query.get("name", ""),
    )


def classify(raw: str) -> Command:
    """Parse ``raw`` and return the command it selects.

    Raises:
        ParseError: If ``raw`` is not a valid URI.
    """
    return route(parse_activation(raw))
