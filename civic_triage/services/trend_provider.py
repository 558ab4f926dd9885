"""
Historical trend weights: remote source plus a local synchronous cache
"""
import asyncio
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from civic_triage.config import settings
from civic_triage.exceptions import ExternalDataUnavailable
from civic_triage.logging_config import logger

TrendKey = Tuple[str, str]


def _normalize_category(category: Optional[str]) -> str:
    return category.strip().casefold() if category else ""


class TrendWeightCache:
    """Synchronous trend provider answering from the last refreshed snapshot"""

    def __init__(self, weights: Optional[Dict[TrendKey, float]] = None):
        self._weights: Dict[TrendKey, float] = {}
        self.last_refresh: Optional[datetime] = None
        if weights:
            self.replace(weights)

    def replace(self, weights: Dict[TrendKey, float]) -> None:
        self._weights = {
            (_normalize_category(category), area): float(weight)
            for (category, area), weight in weights.items()
        }
        self.last_refresh = datetime.now(timezone.utc)

    def trend_weight(self, category: Optional[str], area: str) -> float:
        """Weight for (category, area); 0.0 when unknown"""
        return self._weights.get((_normalize_category(category), area), 0.0)

    async def refresh(self, source: "HttpTrendSource") -> bool:
        """
        Replace the cached weights from a source

        Returns:
            True on success; on failure the previous weights are kept
        """
        try:
            weights = await source.fetch_weights()
        except ExternalDataUnavailable as e:
            logger.warning(f"Trend refresh failed, keeping {len(self._weights)} cached weights: {str(e)}")
            return False

        self.replace(weights)
        logger.info(f"Trend cache refreshed with {len(weights)} weights")
        return True

    def __len__(self) -> int:
        return len(self._weights)


class HttpTrendSource:
    """Fetches trend weights from the analytics service over HTTP"""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url or settings.TREND_SERVICE_URL
        if not self.base_url:
            raise ValueError("Trend service URL is required")
        self.client = client
        self.max_retries = settings.MAX_RETRIES
        self.timeout = settings.REQUEST_TIMEOUT
        self.backoff_base = 1.0
        logger.info(f"Trend source initialized for {self.base_url}")

    async def _request(self, url: str) -> httpx.Response:
        if self.client is not None:
            return await self.client.get(url)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url)

    async def _retry_request(self, url: str) -> httpx.Response:
        """
        GET with exponential backoff retry logic

        Raises:
            ExternalDataUnavailable: On client errors or once retries are exhausted
        """
        retry_count = 0
        last_error = "no attempt made"

        while retry_count < self.max_retries:
            try:
                response = await self._request(url)
                response.raise_for_status()
                logger.debug(f"Fetched {url} on attempt {retry_count + 1}")
                return response

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status < 500 and status != 429:
                    logger.error(f"Client error {status} for {url}")
                    raise ExternalDataUnavailable("trend provider", f"HTTP {status}") from e
                last_error = f"HTTP {status}"
                logger.warning(f"Server error {status} for {url}, retrying...")

            except httpx.TransportError as e:
                last_error = str(e) or type(e).__name__
                logger.warning(f"Transport error for {url}: {last_error}, retrying...")

            # Exponential backoff with jitter
            retry_count += 1
            if retry_count < self.max_retries:
                wait_time = self.backoff_base * (2 ** (retry_count - 1)) + random.uniform(0, 1)
                logger.debug(f"Waiting {wait_time:.2f} seconds before retry {retry_count}")
                await asyncio.sleep(wait_time)

        logger.error(f"Max retries exceeded for {url}")
        raise ExternalDataUnavailable("trend provider", f"max retries exceeded ({last_error})")

    async def fetch_weights(self) -> Dict[TrendKey, float]:
        """
        Fetch all (category, area) trend weights

        Expected payload: ``[{"category": str, "area": str, "weight": float}, ...]``
        or ``{"trends": [...]}``.
        """
        url = f"{self.base_url.rstrip('/')}/trends"
        response = await self._retry_request(url)

        try:
            payload: Any = response.json()
        except ValueError as e:
            raise ExternalDataUnavailable("trend provider", "invalid JSON") from e

        rows: List[Any] = payload.get("trends", []) if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise ExternalDataUnavailable("trend provider", "unexpected payload shape")

        weights: Dict[TrendKey, float] = {}
        for row in rows:
            try:
                weights[(row.get("category") or "", str(row["area"]))] = float(row["weight"])
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed trend row: {row}")

        return weights
