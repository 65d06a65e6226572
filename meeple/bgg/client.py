# bgg/client.py

import asyncio
import logging
import time
from collections import deque
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from meeple.bgg.parser import BggErrorResponse, parse_collection, parse_things
from meeple.config import settings
from meeple.models.parsed_thing import CollectionItem, ParsedThing

log = logging.getLogger(__name__)


class RateLimitError(Exception):
    """Raised when rate limit is exceeded and retry fails."""
    pass


class BggAPIError(Exception):
    """Base exception for BGG XML API errors."""
    pass


class BggClient:
    """Async BGG XML API client with built-in rate limiting and error handling."""

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        batch_size: Optional[int] = None,
    ):
        self.api_token = api_token if api_token is not None else settings.BGG_API_TOKEN
        self.base_url = (base_url or settings.BGG_BASE_URL).rstrip("/")
        self.batch_size = batch_size or settings.REFRESH_BATCH_SIZE
        self._session: Optional[aiohttp.ClientSession] = None

        # Pour throttling : timestamps des dernières requêtes
        self._req_times: deque = deque()
        self._quota_window = settings.BGG_QUOTA_WINDOW
        self._quota_max = settings.BGG_QUOTA_MAX
        self._lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/xml"}
            if self.api_token:
                headers["Authorization"] = f"Bearer {self.api_token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=settings.BGG_HTTP_TIMEOUT)
            )
        return self._session

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.close()

    async def _throttle(self):
        """Sliding-window rate limiting against the shared BGG quota."""
        async with self._lock:
            now = time.time()

            # Purge des requêtes trop vieilles
            while self._req_times and self._req_times[0] <= now - self._quota_window:
                self._req_times.popleft()

            if len(self._req_times) >= self._quota_max:
                # On attend que la plus vieille req sorte de la fenêtre
                wait = self._quota_window - (now - self._req_times[0])
                log.warning(f"Rate limit reached, waiting {wait:.1f}s")
                await asyncio.sleep(wait)

            self._req_times.append(time.time())

    async def _request(self, path: str, params: Dict[str, str], max_retries: Optional[int] = None) -> Optional[str]:
        """
        Make an async GET request with retry logic.

        Args:
            path: Endpoint path under the base URL ("thing", "collection")
            params: Query string parameters
            max_retries: Maximum number of attempts for 429/202/5xx responses

        Returns:
            Raw XML body, or None on 404

        Raises:
            RateLimitError: When rate limit is exceeded after retries
            BggAPIError: For other API errors
            aiohttp.ClientError: For network errors
        """
        max_retries = max_retries or settings.BGG_MAX_RETRIES
        url = f"{self.base_url}/{path}"
        await self._throttle()
        session = await self._get_session()

        for attempt in range(max_retries):
            started = time.monotonic()
            try:
                async with session.get(url, params=params) as resp:
                    log.debug(f"GET {url} {params} -> {resp.status} in {time.monotonic() - started:.2f}s")

                    if resp.status == 429:
                        retry_after = int(resp.headers.get("Retry-After", "1")) + 1
                        if attempt < max_retries - 1:
                            log.warning(f"429 Rate limited, retrying after {retry_after}s (attempt {attempt + 1}/{max_retries})")
                            await asyncio.sleep(retry_after)
                            continue
                        else:
                            raise RateLimitError(f"Rate limit exceeded after {max_retries} attempts")

                    # BGG met les collections en file d'attente : 202 puis 200
                    if resp.status == 202:
                        if attempt < max_retries - 1:
                            wait = 2 ** attempt
                            log.info(f"202 Accepted for {path}, request queued, retrying in {wait}s")
                            await asyncio.sleep(wait)
                            continue
                        raise BggAPIError(f"{path} still queued after {max_retries} attempts")

                    if resp.status == 404:
                        log.debug(f"404 Not Found: {url}")
                        return None

                    resp.raise_for_status()
                    return await resp.text()

            except aiohttp.ClientResponseError as e:
                if e.status >= 500 and attempt < max_retries - 1:
                    wait = 2 ** attempt  # Exponential backoff
                    log.warning(f"Server error {e.status}, retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise BggAPIError(f"API error {e.status}: {e.message}") from e
            except aiohttp.ClientError as e:
                if attempt < max_retries - 1:
                    wait = 2 ** attempt
                    log.warning(f"Network error, retrying in {wait}s: {e}")
                    await asyncio.sleep(wait)
                    continue
                raise

        raise BggAPIError(f"Failed after {max_retries} attempts")

    async def fetch_batch(self, ids: Sequence[str]) -> List[ParsedThing]:
        """
        Fetch full thing records (with stats) for one batch of ids.

        The whole batch succeeds or raises; there is no partial result.
        """
        ids = list(ids)
        if not ids:
            return []
        if len(ids) > self.batch_size:
            raise ValueError(f"batch of {len(ids)} ids exceeds limit of {self.batch_size}")

        body = await self._request("thing", {"id": ",".join(ids), "stats": "1"})
        if body is None:
            raise BggAPIError(f"/thing returned 404 for ids {ids}")
        try:
            return parse_things(body)
        except BggErrorResponse as e:
            raise BggAPIError(f"BGG API error: {e.message}") from e

    async def get_collection(self, username: str, **params: Any) -> List[CollectionItem]:
        """Get the items of a user's collection (own=1, stats=1 and so on)."""
        query = {k: str(v) for k, v in params.items() if v is not None}
        query["username"] = str(username)

        body = await self._request("collection", query)
        if body is None:
            raise BggAPIError(f"collection for {username!r} not found")
        try:
            return parse_collection(body)
        except BggErrorResponse as e:
            raise BggAPIError(f"BGG API error: {e.message}") from e
