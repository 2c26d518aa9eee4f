"""
GitHub repository metadata client.

Parses repository references in the usual forms and reads repository
metadata from the GitHub REST API, tracking the rate-limit headers so that
calls are refused locally once the quota is exhausted.

Usage:
    async with GitHubClient() as github:
        info = await github.get_repo_info_from_url("https://github.com/psf/requests")
        project_data = info.to_project_data()
"""
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from catalog.config import config
from catalog.exceptions import (
    GitHubAPIError,
    InvalidRepoURLError,
    RateLimitError,
    RepoNotFoundError,
)
from catalog.observability import get_logger, Timer

logger = get_logger(__name__)

_PREFIX_RE = re.compile(r"^(https?://)?(www\.)?")


def parse_github_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Extract (owner, repo) from a repository reference.

    Accepts ``https://github.com/o/r``, ``.git`` suffix, ``www.``,
    ``github.com/o/r`` and bare ``o/r``. Returns None when fewer than two
    path segments remain.
    """
    if not isinstance(url, str):
        return None

    clean = url.strip()
    if clean.endswith(".git"):
        clean = clean[:-4]
    clean = _PREFIX_RE.sub("", clean, count=1)
    if clean.startswith("github.com/"):
        clean = clean[len("github.com/"):]

    parts = [part for part in clean.split("/") if part]
    if len(parts) >= 2:
        return parts[0], parts[1]
    return None


def build_github_url(owner: str, repo: str) -> str:
    return f"https://github.com/{owner}/{repo}"


def format_stars(stars: int) -> str:
    """Compact star count: 999, 1.2K, 3.4M."""
    if stars >= 1_000_000:
        return f"{stars / 1_000_000:.1f}M"
    if stars >= 1_000:
        return f"{stars / 1_000:.1f}K"
    return str(stars)


def _date_part(value: Optional[str]) -> str:
    if not value:
        return ""
    return value.split("T")[0]


@dataclass
class RepoInfo:
    """Repository metadata as returned by GitHub."""
    name: str
    owner: str
    description: str = ""
    github_url: str = ""
    stars: int = 0
    language: str = "Unknown"
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0
    topics: List[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    pushed_at: str = ""
    homepage: str = ""
    license: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RepoInfo":
        """Parse a ``GET /repos/{owner}/{repo}`` response body."""
        owner = data.get("owner") or {}
        license_info = data.get("license") or {}
        return cls(
            name=data.get("name") or "",
            owner=owner.get("login") or "",
            description=data.get("description") or "",
            github_url=data.get("html_url") or "",
            stars=int(data.get("stargazers_count") or 0),
            language=data.get("language") or "Unknown",
            forks=int(data.get("forks_count") or 0),
            watchers=int(data.get("watchers_count") or 0),
            open_issues=int(data.get("open_issues_count") or 0),
            topics=list(data.get("topics") or []),
            created_at=_date_part(data.get("created_at")),
            updated_at=_date_part(data.get("updated_at")),
            pushed_at=_date_part(data.get("pushed_at")),
            homepage=data.get("homepage") or "",
            license=license_info.get("name") or "",
        )

    def to_project_data(self) -> Dict[str, Any]:
        """Project payload for the sync coordinator; topics become tags."""
        return {
            "name": self.name,
            "owner": self.owner,
            "description": self.description,
            "github_url": self.github_url or build_github_url(self.owner, self.name),
            "stars": self.stars,
            "language": self.language,
            "tags": list(self.topics),
            "created_at": self.created_at or None,
            "updated_at": self.updated_at or None,
        }


@dataclass
class RateLimitState:
    """Last seen GitHub rate-limit headers."""
    remaining: int = config.github.default_rate_limit
    reset_at: float = 0.0  # epoch seconds

    @property
    def is_limited(self) -> bool:
        return self.remaining <= 0 and time.time() < self.reset_at

    @property
    def seconds_until_reset(self) -> int:
        return max(0, int(self.reset_at - time.time() + 0.999))

    def update(self, headers: httpx.Headers) -> None:
        try:
            self.remaining = int(headers.get("X-RateLimit-Remaining", config.github.default_rate_limit))
        except ValueError:
            self.remaining = config.github.default_rate_limit
        try:
            self.reset_at = float(headers.get("X-RateLimit-Reset", 0))
        except ValueError:
            self.reset_at = 0.0


class GitHubClient:
    """
    Async GitHub REST client.

    Rate-limit state is kept per client instance.
    """

    def __init__(self, base_url: str = None, token: str = None, timeout: float = None):
        self.base_url = (base_url or config.github.api_url).rstrip("/")
        self.token = token if token is not None else config.github.token
        self.timeout = timeout or config.github.request_timeout
        self.rate_limit = RateLimitState()
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def get_repo_info(self, owner: str, repo: str) -> RepoInfo:
        """
        Fetch metadata for one repository.

        Raises:
            RateLimitError: Quota exhausted (locally known or HTTP 403)
            RepoNotFoundError: HTTP 404
            GitHubAPIError: Other error status or network failure
        """
        if self.rate_limit.is_limited:
            wait = self.rate_limit.seconds_until_reset
            raise RateLimitError(
                f"GitHub rate limit reached, retry in {wait}s",
                retry_after=wait,
            )

        if not self._client:
            await self.connect()

        try:
            with Timer(f"github_repo_{owner}/{repo}", logger):
                response = await self._client.get(
                    f"{self.base_url}/repos/{owner}/{repo}",
                    headers=self.headers,
                )
        except httpx.RequestError as e:
            raise GitHubAPIError(f"Request failed for {owner}/{repo}", details=str(e)) from e

        self.rate_limit.update(response.headers)

        if response.status_code == 404:
            raise RepoNotFoundError(f"Repository not found: {owner}/{repo}")
        if response.status_code == 403:
            raise RateLimitError(
                "GitHub request refused (likely rate limited)",
                details=response.text[:200],
                retry_after=self.rate_limit.seconds_until_reset or None,
            )
        if response.status_code >= 400:
            raise GitHubAPIError(
                f"GitHub returned {response.status_code}",
                details=response.text[:200],
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GitHubAPIError("GitHub response is not JSON", details=str(e)) from e
        if not isinstance(data, dict):
            raise GitHubAPIError("Unexpected GitHub response structure")

        logger.debug(
            f"Fetched {owner}/{repo}",
            extra={"rate_limit_remaining": self.rate_limit.remaining}
        )
        return RepoInfo.from_api(data)

    async def get_repo_info_from_url(self, url: str) -> RepoInfo:
        parsed = parse_github_url(url)
        if parsed is None:
            raise InvalidRepoURLError("Invalid GitHub URL", details=url)
        return await self.get_repo_info(*parsed)

    def rate_limit_status(self) -> Dict[str, Any]:
        """Remaining quota, reset time (ISO, local) and whether calls are blocked."""
        reset_time = None
        if self.rate_limit.reset_at:
            reset_time = datetime.fromtimestamp(self.rate_limit.reset_at).isoformat(timespec="seconds")
        return {
            "remaining": self.rate_limit.remaining,
            "reset_time": reset_time,
            "is_limited": self.rate_limit.is_limited,
        }
