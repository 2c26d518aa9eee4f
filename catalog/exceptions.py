"""
Custom exception hierarchy for the repository catalog.

Exception Hierarchy:
    CatalogError (base)
    ├── RemoteStoreError           - Remote store call failed (recoverable)
    │   ├── RemoteConnectionError  - Network/timeout issues
    │   ├── RemoteUnavailableError - Circuit open or remote not configured
    │   ├── RemoteAPIError         - Remote returned error response
    │   └── RemoteDataError        - Invalid response structure
    ├── GitHubError                - GitHub metadata lookup failed
    │   ├── RepoNotFoundError
    │   ├── RateLimitError
    │   ├── GitHubAPIError
    │   └── InvalidRepoURLError
    └── CategoryInUseError         - Category still referenced by projects

    ValidationError                - Input validation failed
    └── DuplicateEntityError       - Entity already exists
"""


class CatalogError(Exception):
    """Base exception for all catalog errors."""

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class RemoteStoreError(CatalogError):
    """Base for remote store failures. Always caught by the sync coordinator."""


class RemoteConnectionError(RemoteStoreError):
    """
    Network-related errors (timeout, connection refused, etc.).

    These are typically recoverable with a later retry.
    """

    def __init__(self, message: str, details: str = None, retry_after: int = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class RemoteUnavailableError(RemoteStoreError):
    """Remote store is not reachable right now (circuit open, no endpoint)."""

    def __init__(self, message: str, details: str = None, retry_after: int = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class RemoteAPIError(RemoteStoreError):
    """
    Remote returned an error response.

    Check status_code for specifics.
    """

    def __init__(self, message: str, details: str = None, status_code: int = None):
        super().__init__(message, details)
        self.status_code = status_code


class RemoteDataError(RemoteStoreError):
    """
    Remote response has unexpected structure.

    This indicates a contract violation - the remote returned
    data in a format we don't understand.
    """

    def __init__(self, message: str, details: str = None, expected: str = None, got: str = None):
        super().__init__(message, details)
        self.expected = expected
        self.got = got


class GitHubError(CatalogError):
    """Base exception for GitHub metadata lookups."""


class RepoNotFoundError(GitHubError):
    """Repository does not exist (or is private)."""


class RateLimitError(GitHubError):
    """GitHub API rate limit exhausted."""

    def __init__(self, message: str, details: str = None, retry_after: int = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class GitHubAPIError(GitHubError):
    """GitHub API returned an unexpected error status."""

    def __init__(self, message: str, details: str = None, status_code: int = None):
        super().__init__(message, details)
        self.status_code = status_code


class InvalidRepoURLError(GitHubError):
    """Input could not be parsed as a GitHub repository reference."""


class CategoryInUseError(CatalogError):
    """Category cannot be deleted while projects reference it."""

    def __init__(self, category_id: str, project_ids: list = None):
        self.category_id = category_id
        self.project_ids = list(project_ids or [])
        super().__init__(
            f"Category '{category_id}' is used by {len(self.project_ids)} project(s)"
        )


class ValidationError(Exception):
    """
    Input validation failed.

    Raised before any store is touched.
    """

    def __init__(self, field: str, message: str, value: any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value!r})"
        return f"{self.field}: {self.message}"


class DuplicateEntityError(ValidationError):
    """An entity with the same identity already exists."""

    def __init__(self, entity: str, key: str, existing_id: str = None):
        self.entity = entity
        self.key = key
        self.existing_id = existing_id
        super().__init__(entity, "Already exists", key)
