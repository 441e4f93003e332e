"""Organization and topic taxonomy definitions loaded from a YAML file.

Example::

    companies:
      - org_id: "1124715036"
        name: Downtown Auto
        role: mine
        service_type: auto_service
        competitors:
          - org_id: "2201931"
            priority: 1
        topics:
          - name: Service quality
            subtopics: [Repair quality, Diagnostics]
      - org_id: "2201931"
        name: Uptown Motors
        role: competitor
        service_type: auto_service
        topics: inherit
    embeddings:
      model: text-embedding-3-small
      batch_size: 100
"""

import copy
import logging
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from reviewscope.config.settings import settings
from reviewscope.data.schemas import Role
from reviewscope.exceptions import ConfigError

logger = logging.getLogger(__name__)

INHERIT = "inherit"
DEFAULT_SERVICE_TYPE = "auto_service"


class TopicConfig(BaseModel):
    """Parent topic with its subtopic labels."""

    name: str
    subtopics: list[str] = []


class CompetitorConfig(BaseModel):
    """Competitor reference of a company."""

    org_id: str
    priority: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("org_id", mode="before")
    @classmethod
    def _coerce_org_id(cls, value):
        return str(value)


class CompanyConfig(BaseModel):
    """One tracked company."""

    org_id: str
    name: Optional[str] = None
    role: Role
    service_type: str = DEFAULT_SERVICE_TYPE
    competitors: list[CompetitorConfig] = []
    topics: Union[list[TopicConfig], str] = []

    @field_validator("org_id", mode="before")
    @classmethod
    def _coerce_org_id(cls, value):
        return str(value)

    @field_validator("topics")
    @classmethod
    def _check_topics(cls, value):
        if isinstance(value, str) and value != INHERIT:
            raise ValueError(f'topics must be a list or "{INHERIT}"')
        return value

    @property
    def topic_list(self) -> list[TopicConfig]:
        return self.topics if isinstance(self.topics, list) else []


class EmbeddingsConfig(BaseModel):
    model: str = settings.openai_embedding_model
    batch_size: int = settings.embedding_batch_size


class TaxonomyConfig(BaseModel):
    """Parsed taxonomy file."""

    companies: list[CompanyConfig]
    embeddings: EmbeddingsConfig = EmbeddingsConfig()

    def get_company(self, org_id: str) -> Optional[CompanyConfig]:
        for company in self.companies:
            if company.org_id == org_id:
                return company
        return None


def _resolve_inherited_topics(companies: list[CompanyConfig]) -> None:
    """Copy topics into companies declaring ``topics: inherit``.

    The donor is the first company of the same service type that defines a
    non-empty topic list. Without a donor the company gets no topics.
    """
    for company in companies:
        if company.topics != INHERIT:
            continue
        donor = next(
            (
                c
                for c in companies
                if c.service_type == company.service_type
                and isinstance(c.topics, list)
                and c.topics
            ),
            None,
        )
        if donor is None:
            logger.warning(
                "No topics to inherit for %s (service type %s)",
                company.org_id,
                company.service_type,
            )
            company.topics = []
        else:
            company.topics = copy.deepcopy(donor.topics)


def parse_taxonomy(raw: str) -> TaxonomyConfig:
    """Parse taxonomy YAML text.

    Raises:
        ConfigError: If the document is malformed
    """
    try:
        doc = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}") from e

    if not isinstance(doc, dict) or not isinstance(doc.get("companies"), list):
        raise ConfigError('Config must have a "companies" array')

    try:
        config = TaxonomyConfig.model_validate(doc)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}") from e

    _resolve_inherited_topics(config.companies)
    return config


def load_taxonomy(path: Optional[Path] = None) -> TaxonomyConfig:
    """Load and parse the taxonomy file."""
    path = Path(path or settings.taxonomy_config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    return parse_taxonomy(path.read_text(encoding="utf-8"))
