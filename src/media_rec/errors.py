"""Exceptions raised by the recommendation engine."""


class RecommendationError(Exception):
    """Base class for engine errors."""

    code: str = "recommendation_error"

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.__class__.__name__)
        if code:
            self.code = code


class NotFound(RecommendationError):
    """A requested content item does not exist in the catalog."""

    code = "not_found"


class UpstreamUnavailable(RecommendationError):
    """The catalog or interaction store failed to answer."""

    code = "upstream_unavailable"
