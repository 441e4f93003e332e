"""Sync, embed, classify and score tracked organizations."""

import asyncio
import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from reviewscope.config.settings import Settings, settings as default_settings
from reviewscope.data.database import transaction, utcnow
from reviewscope.data.embeddings import (
    get_embeddable_reviews,
    get_unembedded_reviews,
    save_review_embedding,
)
from reviewscope.data.organizations import (
    list_organizations,
    require_organization,
    upsert_organization,
)
from reviewscope.data.reviews import upsert_reviews
from reviewscope.data.schemas import (
    EmbedOutcome,
    OrganizationScore,
    PipelineOutcome,
    SyncLogInput,
    SyncOutcome,
    SyncStatus,
)
from reviewscope.data.sync_log import decide_sync_mode, log_sync
from reviewscope.data.topics import get_topics_for_org, save_topic_embedding
from reviewscope.embeddings.classifier import classify_organization
from reviewscope.embeddings.generator import EmbeddingGenerator
from reviewscope.exceptions import EmbeddingError, FetchError
from reviewscope.fetchers.base import BaseFetcher
from reviewscope.processing.scoring import ScoreComputer, refresh_stored_scores

logger = logging.getLogger(__name__)


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


class SyncPipeline:
    """Run the review pipeline one organization at a time.

    Each stage commits its own work, so a run that stops part way can be
    resumed from the last completed stage.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        fetcher: Optional[BaseFetcher],
        embedder: Optional[EmbeddingGenerator] = None,
        settings: Settings = default_settings,
    ):
        """Initialize the pipeline.

        Args:
            session_factory: Factory for database sessions
            fetcher: Page-fetch collaborator, required for the sync stage
            embedder: Embedding collaborator, required for the embed stage
            settings: Delays, batch sizes and classification defaults
        """
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.embedder = embedder
        self.settings = settings

    async def sync_organization(self, org_id: str, force_full: bool = False) -> SyncOutcome:
        """Fetch and store the reviews of one organization.

        Errors raised while fetching or storing are recorded as an error
        ledger entry and returned in the outcome. The store is all or
        nothing, so a failed sync leaves no partial batch behind.

        Raises:
            UnknownOrganizationError: If the organization is not tracked
        """
        if self.fetcher is None:
            raise FetchError("No fetcher configured")

        with self.session_factory() as session:
            org = require_organization(session, org_id)
            name = org.name
            mode = decide_sync_mode(session, org_id, force_full)

        started_at = utcnow()
        logger.info("Syncing %s (%s)", org_id, mode.value)

        try:
            result = await self.fetcher.fetch_with_retry(org_id, mode)
            with self.session_factory() as session:
                with transaction(session):
                    upsert_organization(session, org_id, info=result.organization)
                    counts = upsert_reviews(session, org_id, result.reviews)
        except Exception as e:
            logger.warning("Sync of %s failed: %s", org_id, _describe(e))
            with self.session_factory() as session:
                log_sync(
                    session,
                    SyncLogInput(
                        org_id=org_id,
                        sync_type=mode,
                        started_at=started_at,
                        finished_at=utcnow(),
                        status=SyncStatus.ERROR,
                        error_message=_describe(e),
                    ),
                )
            return SyncOutcome(
                org_id=org_id,
                name=name,
                sync_type=mode,
                status=SyncStatus.ERROR,
                error=_describe(e),
            )

        with self.session_factory() as session:
            log_sync(
                session,
                SyncLogInput(
                    org_id=org_id,
                    sync_type=mode,
                    reviews_added=counts.added,
                    reviews_updated=counts.updated,
                    started_at=started_at,
                    finished_at=utcnow(),
                    status=SyncStatus.OK,
                ),
            )

        logger.info(
            "Synced %s: %d fetched, %d added, %d updated",
            org_id,
            len(result.reviews),
            counts.added,
            counts.updated,
        )
        return SyncOutcome(
            org_id=org_id,
            name=result.organization.name or name,
            sync_type=mode,
            status=SyncStatus.OK,
            reviews_fetched=len(result.reviews),
            reviews_added=counts.added,
            reviews_updated=counts.updated,
        )

    def resolve_org_ids(self, org_ids: Optional[list[str]] = None) -> list[str]:
        """Validate requested ids, or list every tracked organization.

        Raises:
            UnknownOrganizationError: On the first id that is not tracked
        """
        with self.session_factory() as session:
            if org_ids is None:
                return [org.org_id for org in list_organizations(session)]
            for org_id in org_ids:
                require_organization(session, org_id)
        return list(org_ids)

    async def sync_all(
        self, org_ids: Optional[list[str]] = None, force_full: bool = False
    ) -> list[SyncOutcome]:
        """Sync organizations in order with a delay between fetches."""
        outcomes = []
        for i, org_id in enumerate(self.resolve_org_ids(org_ids)):
            if i > 0 and self.settings.request_delay > 0:
                await asyncio.sleep(self.settings.request_delay)
            outcomes.append(await self.sync_organization(org_id, force_full))
        return outcomes

    async def embed_organization(self, org_id: str, force: bool = False) -> EmbedOutcome:
        """Embed review texts and topic labels that have no embedding yet.

        Args:
            org_id: Organization to embed
            force: Re-embed every review and topic

        Raises:
            EmbeddingError: If no embedder is configured or the service fails
        """
        if self.embedder is None:
            raise EmbeddingError("No embedding generator configured")

        with self.session_factory() as session:
            require_organization(session, org_id)
            if force:
                reviews = get_embeddable_reviews(session, org_id)
            else:
                reviews = get_unembedded_reviews(session, org_id)
            topics = [
                (topic.id, topic.name)
                for topic in get_topics_for_org(session, org_id)
                if force or topic.embedding is None
            ]

        batch_size = self.settings.embedding_batch_size
        if reviews:
            vectors = await self.embedder.embed_texts(
                [text for _, text in reviews], batch_size=batch_size
            )
            with self.session_factory() as session:
                with transaction(session):
                    for (review_id, _), vector in zip(reviews, vectors):
                        save_review_embedding(session, review_id, self.embedder.model, vector)

        if topics:
            vectors = await self.embedder.embed_texts(
                [name for _, name in topics], batch_size=batch_size
            )
            with self.session_factory() as session:
                with transaction(session):
                    for (topic_id, _), vector in zip(topics, vectors):
                        save_topic_embedding(session, topic_id, vector)

        logger.info(
            "Embedded %d reviews and %d topics of %s", len(reviews), len(topics), org_id
        )
        return EmbedOutcome(
            org_id=org_id, reviews_embedded=len(reviews), topics_embedded=len(topics)
        )

    def classify(self, org_id: str) -> int:
        with self.session_factory() as session:
            return classify_organization(
                session,
                org_id,
                threshold=self.settings.classify_threshold,
                max_topics=self.settings.classify_max_topics,
            )

    def score(self, org_id: str, include_subtopics: bool = True) -> OrganizationScore:
        """Compute and cache the scores of an organization."""
        with self.session_factory() as session:
            result = ScoreComputer(session).compute_organization_score(
                org_id, include_subtopics=include_subtopics
            )
            refresh_stored_scores(session, org_id, result)
        return result

    async def run(
        self,
        org_ids: Optional[list[str]] = None,
        force_full: bool = False,
        embed: bool = True,
        classify: bool = True,
        score: bool = True,
    ) -> list[PipelineOutcome]:
        """Sync, then embed, classify and score each organization.

        A failed sync or embedding only affects its own organization; the
        later stages still run on whatever is already stored.
        """
        outcomes = []
        for sync_outcome in await self.sync_all(org_ids, force_full):
            org_id = sync_outcome.org_id
            outcome = PipelineOutcome(org_id=org_id, sync=sync_outcome)

            if embed and self.embedder is not None:
                try:
                    outcome.embed = await self.embed_organization(org_id)
                except EmbeddingError as e:
                    logger.warning("Embedding of %s failed: %s", org_id, e)
                    outcome.embed = EmbedOutcome(org_id=org_id, error=_describe(e))

            if classify:
                outcome.reviews_classified = self.classify(org_id)
            if score:
                outcome.score = self.score(org_id)

            outcomes.append(outcome)
        return outcomes
