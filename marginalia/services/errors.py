# =============================================================================
# Retrieval Errors
# =============================================================================
#
# The API layer maps these to HTTP status codes (api/search.py, api/feed.py):
#
#   InvalidArgumentError  → 400   bad mode / offset / limit / threshold
#   UpstreamError         → 502   embedding provider failed
#   MissingUserScopeError → 500   a query was attempted without a user id
#
# An empty query is NOT an error; it yields an empty result list.
# =============================================================================


class InvalidArgumentError(ValueError):
    """A caller-supplied argument is outside its accepted domain."""


class UpstreamError(RuntimeError):
    """The embedding provider failed (timeout, API error, malformed response)."""


class MissingUserScopeError(RuntimeError):
    """
    A retrieval query was built without a resolved user id.

    This is a programmer error: the auth layer must resolve the user before
    the core is called. It is never converted into an empty result.
    """


def require_user_id(user_id: str | None) -> str:
    """Return `user_id` unchanged, or raise if it is missing or blank."""
    if user_id is None or not str(user_id).strip():
        raise MissingUserScopeError("retrieval query requires a user id")
    return user_id
