from __future__ import annotations

import pytest

from reviewscope.config.settings import settings
from reviewscope.data.database import get_engine, get_session_factory, init_database
from reviewscope.data.organizations import upsert_organization
from reviewscope.data.schemas import FetchResult, OrganizationInfo, Role, SyncMode
from reviewscope.exceptions import EmbeddingError
from reviewscope.fetchers.base import BaseFetcher


class FakeFetcher(BaseFetcher):
    """Returns canned results per org_id, or raises the error registered for it."""

    def __init__(self, tmp_path):
        super().__init__(output_dir=tmp_path / "raw", max_retries=1, retry_delay=0)
        self.results: dict[str, FetchResult] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, SyncMode]] = []

    @property
    def source_id(self) -> str:
        return "fake"

    async def fetch(self, org_id: str, mode: SyncMode) -> FetchResult:
        self.calls.append((org_id, mode))
        if org_id in self.errors:
            raise self.errors[org_id]
        return self.results[org_id]


class FakeEmbedder:
    """Looks texts up in a fixed table; unknown texts get ``default``."""

    model = "fake-embedding"

    def __init__(self):
        self.vectors: dict[str, list[float]] = {}
        self.default = [0.0, 0.0, 1.0]
        self.fail = False
        self.calls: list[list[str]] = []

    async def embed_texts(self, texts, batch_size=None, on_progress=None, show_progress=False):
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("embedding service unavailable")
        return [list(self.vectors.get(text, self.default)) for text in texts]


@pytest.fixture
def engine(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path / 'reviews.db'}")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def org_id(session) -> str:
    """A tracked organization with a name."""
    upsert_organization(
        session, "org-1", OrganizationInfo(name="Downtown Auto"), role=Role.MINE
    )
    return "org-1"


@pytest.fixture
def fake_fetcher(tmp_path) -> FakeFetcher:
    return FakeFetcher(tmp_path)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fast_settings():
    """Settings without inter-fetch delay."""
    return settings.model_copy(update={"request_delay": 0})
