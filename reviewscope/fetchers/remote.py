"""Fetcher backed by a remote scraping service."""

import logging
from pathlib import Path
from typing import Optional, Union

import httpx
from pydantic import ValidationError

from reviewscope.config.settings import settings
from reviewscope.data.schemas import FetchResult, SyncMode
from reviewscope.exceptions import FetchError
from reviewscope.fetchers.base import BaseFetcher

logger = logging.getLogger(__name__)


class HttpFetcher(BaseFetcher):
    """Fetch scrape results as JSON from ``{base_url}/orgs/{org_id}/reviews``."""

    def __init__(
        self,
        base_url: str = settings.fetch_base_url,
        window_size: int = settings.incremental_window_size,
        save_raw: bool = False,
        output_dir: Optional[Path] = None,
        max_retries: int = settings.max_retries,
        retry_delay: float = settings.retry_delay,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(output_dir, max_retries, retry_delay)
        self.base_url = base_url.rstrip("/")
        self.window_size = window_size
        self.save_raw = save_raw
        self._client = client

    @property
    def source_id(self) -> str:
        return "remote"

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=settings.request_timeout,
                headers={"Accept": "application/json"},
                follow_redirects=True,
            )
        return self._client

    async def aclose(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _get_reviews_url(self, org_id: str) -> str:
        return f"{self.base_url}/orgs/{org_id}/reviews"

    async def fetch(self, org_id: str, mode: SyncMode) -> FetchResult:
        params: dict[str, Union[str, int]] = {"mode": mode.value}
        if mode == SyncMode.INCREMENTAL:
            params["limit"] = self.window_size

        logger.debug("GET %s %s", self._get_reviews_url(org_id), params)
        response = await self.client.get(self._get_reviews_url(org_id), params=params)
        response.raise_for_status()

        try:
            result = FetchResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise FetchError(f"Malformed response for {org_id}: {e}") from e

        if self.save_raw:
            self.save_result(org_id, result)
        return result
