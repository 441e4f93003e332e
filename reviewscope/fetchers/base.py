"""Base fetcher class with common functionality."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from reviewscope.config.settings import settings
from reviewscope.data.database import utcnow
from reviewscope.data.schemas import FetchResult, SyncMode
from reviewscope.exceptions import FetchError

logger = logging.getLogger(__name__)


class BaseFetcher(ABC):
    """Base class for page-fetch collaborators.

    A fetcher turns an organization id into a structured FetchResult. It is
    the only place that talks to the review source; everything downstream
    works on FetchResult.
    """

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        max_retries: int = settings.max_retries,
        retry_delay: float = settings.retry_delay,
    ):
        self.output_dir = output_dir or settings.raw_data_dir
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @property
    def source_id(self) -> str:
        """Return the source ID for this fetcher."""
        raise NotImplementedError

    @abstractmethod
    async def fetch(self, org_id: str, mode: SyncMode) -> FetchResult:
        """Fetch organization info and reviews.

        Args:
            org_id: External organization id
            mode: Full history or recent window only

        Returns:
            Organization info and reviews as seen on the source
        """

    async def fetch_with_retry(self, org_id: str, mode: SyncMode) -> FetchResult:
        """Fetch with linear backoff between attempts.

        Raises:
            FetchError: When every attempt failed
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
                retry=retry_if_exception_type(httpx.HTTPError),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "Retrying fetch of %s (attempt %d)",
                            org_id,
                            attempt.retry_state.attempt_number,
                        )
                    return await self.fetch(org_id, mode)
        except httpx.HTTPError as e:
            raise FetchError(f"Fetching {org_id} failed: {e}") from e

    def _result_path(self, org_id: str) -> Path:
        return self.output_dir / self.source_id / f"{org_id}.json"

    def save_result(self, org_id: str, result: FetchResult) -> Path:
        """Save a fetch result to JSON file.

        Args:
            org_id: Organization id
            result: Fetch result to save

        Returns:
            Path to saved file
        """
        output_file = self._result_path(org_id)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "org_id": org_id,
            "source_id": self.source_id,
            "fetched_at": utcnow().isoformat(),
            **result.model_dump(mode="json"),
        }

        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        return output_file

    def load_result(self, org_id: str) -> Optional[FetchResult]:
        """Load a saved fetch result, or None when nothing was saved.

        Raises:
            FetchError: If the file exists but is not a valid result
        """
        input_file = self._result_path(org_id)
        if not input_file.exists():
            return None

        try:
            with open(input_file, encoding="utf-8") as f:
                data = json.load(f)
            return FetchResult.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise FetchError(f"Invalid saved result {input_file}: {e}") from e
