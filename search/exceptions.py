"""
Error taxonomy for the search pipeline.

Soft failures (oracle problems) never leave the oracle; hard failures
(store problems) end the stream with a single error event.
"""


class SearchError(Exception):
    """Base class for all search pipeline errors."""

    user_message = "Sorry, something went wrong processing your question. Please try again."


class InvalidQueryError(SearchError):
    """Raised before a stream opens when the query is empty or malformed."""

    user_message = "Query is required"


class ResourceStoreError(SearchError):
    """The resource catalog could not be queried (transient infrastructure failure)."""


class OracleError(SearchError):
    """The language model returned nothing usable. Always recovered by a fallback directive."""


class PolicyConfigError(SearchError):
    """The pricing / access policy configuration is invalid."""
