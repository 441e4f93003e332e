"""Fetcher that replays previously saved scrape results."""

from reviewscope.config.settings import settings
from reviewscope.data.schemas import FetchResult, SyncMode
from reviewscope.exceptions import FetchError
from reviewscope.fetchers.base import BaseFetcher


class JsonFileFetcher(BaseFetcher):
    """Read ``{raw_data_dir}/files/{org_id}.json`` written by ``save_result``.

    Incremental mode returns only the first ``window_size`` reviews, the same
    recent window a live source would return.
    """

    def __init__(self, *args, window_size: int = settings.incremental_window_size, **kwargs):
        super().__init__(*args, **kwargs)
        self.window_size = window_size

    @property
    def source_id(self) -> str:
        return "files"

    async def fetch(self, org_id: str, mode: SyncMode) -> FetchResult:
        result = self.load_result(org_id)
        if result is None:
            raise FetchError(f"No saved result for {org_id} in {self.output_dir}")
        if mode == SyncMode.INCREMENTAL:
            result.reviews = result.reviews[: self.window_size]
        return result
