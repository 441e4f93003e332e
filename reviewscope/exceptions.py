"""Exceptions raised across the review pipeline."""


class ReviewScopeError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(ReviewScopeError, ValueError):
    """Raised when the taxonomy config file is missing or malformed."""


class UnknownOrganizationError(ReviewScopeError, LookupError):
    """Raised when an operation names an organization that is not tracked."""

    def __init__(self, org_id: str):
        super().__init__(f"Organization {org_id} is not being tracked")
        self.org_id = org_id


class FetchError(ReviewScopeError):
    """Raised when the page-fetch collaborator cannot produce a result."""


class EmbeddingError(ReviewScopeError):
    """Raised when the embedding service fails."""
