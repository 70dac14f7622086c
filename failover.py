import logging
import threading
from dataclasses import dataclass, asdict
from typing import Callable, Optional

import requests

logger = logging.getLogger("sleekflow-relay.failover")


# ----------------------
# Types
# ----------------------
@dataclass(frozen=True)
class UpstreamResponse:
    status: int
    body: bytes


@dataclass(frozen=True)
class Attempt:
    """One failed host: either an upstream status/body or a transport error."""
    base: str
    status: Optional[int] = None
    body: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


class UpstreamUnavailable(Exception):
    """Every base URL was tried and none succeeded."""

    def __init__(self, attempts):
        self.attempts = list(attempts)
        super().__init__(f"All base URLs failed ({len(self.attempts)} attempts)")

    def to_dict(self) -> dict:
        return {
            "error": "All base URLs failed",
            "attempts": [a.to_dict() for a in self.attempts],
        }


# ----------------------
# Host pool
# ----------------------
class HostPool:
    """Fixed list of base URLs plus the most recently successful one."""

    def __init__(self, base_urls):
        if not base_urls:
            raise ValueError("base_urls must not be empty")
        self._base_urls = tuple(base_urls)
        self._pinned: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def base_urls(self) -> tuple:
        return self._base_urls

    @property
    def pinned(self) -> Optional[str]:
        with self._lock:
            return self._pinned

    def pin(self, base: str) -> None:
        with self._lock:
            previous, self._pinned = self._pinned, base
        if previous != base:
            logger.info("Pinned base URL %s (was %s)", base, previous)

    def choose_order(self) -> list:
        pinned = self.pinned
        if pinned is None:
            return list(self._base_urls)
        return [pinned] + [b for b in self._base_urls if b != pinned]


# ----------------------
# Failover loop
# ----------------------
def join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}{path}"


def try_hosts(
    pool: HostPool,
    send: Callable[[str], requests.Response],
    is_success: Callable[[requests.Response], bool],
) -> UpstreamResponse:
    """Send to each host in pool order until ``is_success`` accepts a response.

    The winning host is pinned. Rejections and transport errors are collected
    and raised together as UpstreamUnavailable once every host has been tried.
    """
    attempts = []
    for base in pool.choose_order():
        try:
            resp = send(base)
        except requests.RequestException as e:
            logger.warning("Base URL %s unreachable: %s", base, e)
            attempts.append(Attempt(base=base, error=str(e)))
            continue

        if is_success(resp):
            pool.pin(base)
            return UpstreamResponse(status=resp.status_code, body=resp.content)

        logger.warning("Base URL %s responded %d", base, resp.status_code)
        attempts.append(Attempt(
            base=base,
            status=resp.status_code,
            body=resp.content.decode("utf-8", errors="replace"),
        ))

    raise UpstreamUnavailable(attempts)
