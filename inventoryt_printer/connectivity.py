"""Connection test against the configured endpoint."""

from __future__ import annotations

import logging
import ssl
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Protocol

USER_AGENT = "InventoryPrinter/1.0"
PROBE_TIMEOUT_SECONDS = 5.0

LOGGER = logging.getLogger(__name__)


class NetworkError(OSError):
    """Raised when the endpoint cannot be reached."""

    def __init__(self, url: str, reason: object) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


@dataclass(frozen=True)
class ProbeResponse:
    status_code: int
    body: bytes = b""


class HTTPProbe(Protocol):
    def get(self, url: str, timeout: float) -> ProbeResponse:
        """Issue a GET request.

        Raises:
            NetworkError: If no HTTP response was received.
        """
        ...


class UrllibProbe:
    """HTTPProbe backed by urllib. Certificates are not verified."""

    def __init__(self, *, user_agent: str = USER_AGENT) -> None:
        self._user_agent = user_agent
        self._ssl_context = ssl.create_default_context()
        self._ssl_context.check_hostname = False
        self._ssl_context.verify_mode = ssl.CERT_NONE

    def get(self, url: str, timeout: float) -> ProbeResponse:
        request = urllib.request.Request(url, headers={"User-Agent": self._user_agent}, method="GET")
        try:
            with urllib.request.urlopen(request, timeout=timeout, context=self._ssl_context) as response:
                return ProbeResponse(status_code=response.status, body=response.read())
        except urllib.error.HTTPError as exc:
            # A response with an error status still counts as "reachable".
            return ProbeResponse(status_code=exc.code)
        except urllib.error.URLError as exc:
            raise NetworkError(url, exc.reason) from exc
        except (OSError, ValueError) as exc:
            raise NetworkError(url, exc) from exc


@dataclass(frozen=True)
class ProbeAttempt:
    url: str
    status_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200


@dataclass(frozen=True)
class ConnectionTestResult:
    attempts: list[ProbeAttempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return any(attempt.ok for attempt in self.attempts)

    @property
    def last(self) -> ProbeAttempt | None:
        return self.attempts[-1] if self.attempts else None


def insecure_fallback(url: str) -> str | None:
    """Return the http:// form of an https:// URL, or None for other schemes."""
    scheme, separator, rest = url.partition("://")
    if separator and scheme.lower() == "https":
        return f"http://{rest}"
    return None


def _attempt(probe: HTTPProbe, url: str, timeout: float) -> ProbeAttempt:
    LOGGER.info("Testing connection to: %s", url)
    try:
        response = probe.get(url, timeout)
    except NetworkError as exc:
        LOGGER.error("Network error: %s", exc)
        return ProbeAttempt(url=url, error=str(exc.reason))
    if response.status_code != 200:
        LOGGER.error("Server returned error status: %d", response.status_code)
    return ProbeAttempt(url=url, status_code=response.status_code)


def run_connection_test(
    probe: HTTPProbe, endpoint: str, *, timeout: float = PROBE_TIMEOUT_SECONDS
) -> ConnectionTestResult:
    """Probe ``endpoint``; if it is https:// and fails, try http:// exactly once."""
    attempts = [_attempt(probe, endpoint, timeout)]
    if not attempts[0].ok:
        fallback = insecure_fallback(endpoint)
        if fallback is not None:
            LOGGER.warning("Secure endpoint failed; retrying over http")
            attempts.append(_attempt(probe, fallback, timeout))
    result = ConnectionTestResult(attempts=attempts)
    if result.ok:
        LOGGER.info("Connection test successful")
    return result


def diagnose(attempt: ProbeAttempt) -> list[str]:
    """Turn a failed attempt into operator-facing hints."""
    if attempt.error is None:
        if attempt.status_code is not None and attempt.status_code != 200:
            return [f"Server returned error status: {attempt.status_code}"]
        return []

    lines = [f"Network error: {attempt.error}"]
    error = attempt.error.lower()
    if (
        "no such host" in error
        or "name or service not known" in error
        or "nodename nor servname" in error
        or "getaddrinfo failed" in error
        or "temporary failure in name resolution" in error
    ):
        lines.append("Internet connection might be down or DNS resolution failed")
    elif "connection refused" in error or "actively refused" in error:
        lines.append("Server is not accepting connections")
    elif "timed out" in error or "timeout" in error:
        lines.append("Connection timed out - server might be slow or unreachable")
    return lines
