"""
LeetCode stats provider.

fetch(username) -> SolveCounts, or raises UpstreamUnavailableError. Every call
is bounded by PROVIDER_TIMEOUT_SECONDS; a timeout counts as a fetch failure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from solvetrack.core.config import settings
from solvetrack.core.errors import UpstreamUnavailableError
from solvetrack.models.stats import SolveCounts

logger = logging.getLogger("solvetrack.provider")

USER_STATS_QUERY = """
query userStats($username: String!) {
  matchedUser(username: $username) {
    submitStatsGlobal {
      acSubmissionNum {
        difficulty
        count
      }
    }
  }
}
"""

DIFFICULTIES = ("easy", "medium", "hard")


def parse_user_stats(payload: Dict[str, Any]) -> Optional[SolveCounts]:
    """Extract counts from a GraphQL response; None when the user is unknown."""
    data = payload.get("data") or {}
    matched = data.get("matchedUser")
    if not matched or not matched.get("submitStatsGlobal"):
        return None

    counts = {name: 0 for name in DIFFICULTIES}
    for submission in matched["submitStatsGlobal"].get("acSubmissionNum") or []:
        difficulty = str(submission.get("difficulty", "")).lower()
        if difficulty in counts:
            counts[difficulty] = int(submission.get("count") or 0)
    return SolveCounts(**counts)


class LeetCodeStatsProvider:
    def __init__(
        self,
        *,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url or settings.LEETCODE_GRAPHQL_URL
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.user_agent = user_agent or settings.PROVIDER_USER_AGENT
        self._transport = transport

    def fetch(self, username: str) -> SolveCounts:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        body = {"query": USER_STATS_QUERY, "variables": {"username": username}}

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            logger.warning("provider.timeout", extra={"username": username})
            raise UpstreamUnavailableError("Timed out fetching LeetCode stats") from exc
        except httpx.HTTPError as exc:
            logger.warning("provider.transport_error", extra={"username": username, "error_code": exc.__class__.__name__})
            raise UpstreamUnavailableError("Failed to fetch LeetCode stats") from exc

        if response.status_code >= 300:
            logger.warning("provider.bad_status", extra={"username": username, "status": response.status_code})
            raise UpstreamUnavailableError(f"LeetCode responded with {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("LeetCode returned a malformed response") from exc

        counts = parse_user_stats(payload if isinstance(payload, dict) else {})
        if counts is None:
            logger.info("provider.user_missing", extra={"username": username})
            raise UpstreamUnavailableError("No stats found on LeetCode for this username", user_missing=True)
        return counts


_provider_instance = None


def get_provider():
    """Singleton provider; FastAPI routes take it as a dependency."""
    global _provider_instance
    if _provider_instance is None:
        _provider_instance = LeetCodeStatsProvider()
    return _provider_instance


def set_provider(provider) -> None:
    global _provider_instance
    _provider_instance = provider
