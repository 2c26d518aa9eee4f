"""
Remote store client.

``RemoteStoreClient`` is the capability the sync coordinator depends on:
collection-level reads and per-entity writes over two collections
(projects, categories), keyed by id. Every method either returns real data
or raises a RemoteStoreError subclass; an empty list always means "zero
records", never "call failed".

``HttpRemoteStore`` implements the capability against the catalog's HTTP
API (``/api/projects``, ``/api/categories``, ``/api/sync``).

Usage:
    async with HttpRemoteStore(session) as remote:
        projects = await remote.list_projects()
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from catalog.config import config
from catalog.exceptions import (
    RemoteAPIError,
    RemoteConnectionError,
    RemoteDataError,
    RemoteStoreError,
    RemoteUnavailableError,
)
from catalog.models import Project, Category, SyncAllResult, decode_tags, encode_tags
from catalog.observability import get_logger, get_correlation_id, Timer
from catalog.resilience import CircuitBreaker, CircuitBreakerConfig
from catalog.session import SessionContext

logger = get_logger(__name__)


class RemoteStoreClient(ABC):
    """Abstract remote record store for projects and categories."""

    @abstractmethod
    async def list_projects(self) -> List[Project]:
        """Read all projects."""

    @abstractmethod
    async def list_categories(self) -> List[Category]:
        """Read all categories."""

    @abstractmethod
    async def upsert_project(self, project: Project) -> Project:
        """Insert a project; returns the entity as stored remotely."""

    @abstractmethod
    async def upsert_category(self, category: Category) -> Category:
        """Insert a category; returns the entity as stored remotely."""

    @abstractmethod
    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> None:
        """Replace fields of an existing project."""

    @abstractmethod
    async def update_category(self, category_id: str, updates: Dict[str, Any]) -> None:
        """Replace fields of an existing category."""

    @abstractmethod
    async def delete_project(self, project_id: str) -> None:
        """Delete a project by id."""

    @abstractmethod
    async def delete_category(self, category_id: str) -> None:
        """Delete a category by id."""

    @abstractmethod
    async def bulk_upsert(
        self,
        projects: List[Project],
        categories: List[Category],
    ) -> SyncAllResult:
        """Insert-or-replace every entity by id; per-entity failures are skipped."""

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "RemoteStoreClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class HttpRemoteStore(RemoteStoreClient):
    """
    Remote store over the catalog HTTP API.

    One attempt per call. A circuit breaker short-circuits calls while the
    remote keeps failing.
    """

    def __init__(
        self,
        session: SessionContext,
        base_url: str = None,
        timeout: float = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.session = session
        self.base_url = (base_url if base_url is not None else config.remote.base_url).rstrip("/")
        self.timeout = timeout or config.remote.request_timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            config=CircuitBreakerConfig.from_remote(config.remote)
        )
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> Dict[str, str]:
        """Request headers with auth."""
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.session.auth_token:
            headers["Authorization"] = f"Basic {self.session.auth_token}"
        return headers

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpRemoteStore":
        await self.connect()
        return self

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make one HTTP request to the remote API.

        Raises:
            RemoteUnavailableError: No endpoint configured or circuit open
            RemoteConnectionError: Network/timeout errors
            RemoteAPIError: Error status or error payload
            RemoteDataError: Body is not a JSON object
        """
        if not self.base_url:
            raise RemoteUnavailableError("Remote store is not configured")

        await self.circuit_breaker.guard(endpoint)

        try:
            result = await self._do_request(method, endpoint, params, json)
        except RemoteStoreError as e:
            await self.circuit_breaker.record(e)
            raise
        await self.circuit_breaker.record()
        return result

    async def _do_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        json: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        if not self._client:
            await self.connect()

        url = f"{self.base_url}/api/{endpoint}"

        headers = self.headers
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Request-ID"] = correlation_id

        try:
            with Timer(f"remote_{method.lower()}_{endpoint}", logger):
                response = await self._client.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json,
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            raise RemoteConnectionError(
                f"Request timeout after {self.timeout}s",
                details=f"{method} {endpoint}",
                retry_after=5
            ) from e
        except httpx.RequestError as e:
            raise RemoteConnectionError(f"Request failed: {method} {endpoint}", details=str(e)) from e

        if response.status_code >= 400:
            error_text = response.text[:500]
            raise RemoteAPIError(
                f"Remote returned {response.status_code}",
                details=error_text,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteDataError("Response is not JSON", details=str(e)) from e

        if not isinstance(payload, dict):
            raise RemoteDataError(
                "Unexpected response structure",
                expected="object",
                got=type(payload).__name__,
            )

        if payload.get("error"):
            raise RemoteAPIError(
                str(payload["error"]),
                details=payload.get("details"),
                status_code=response.status_code,
            )

        return payload

    @staticmethod
    def _require_list(payload: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
        items = payload.get(key)
        if not isinstance(items, list):
            raise RemoteDataError(
                f"Response is missing '{key}'",
                expected="list",
                got=type(items).__name__,
            )
        return [item for item in items if isinstance(item, dict)]

    @staticmethod
    def _require_success(payload: Dict[str, Any], action: str) -> None:
        if not payload.get("success"):
            raise RemoteAPIError(f"Remote did not confirm {action}", details=str(payload)[:200])

    # ═══════════════════════════════════════════════════════════════════════════
    # PROJECTS
    # ═══════════════════════════════════════════════════════════════════════════

    async def list_projects(self) -> List[Project]:
        payload = await self._request("GET", "projects")
        return [Project.from_dict(item) for item in self._require_list(payload, "projects")]

    async def upsert_project(self, project: Project) -> Project:
        payload = await self._request("POST", "projects", json=project.to_remote())
        self._require_success(payload, "project insert")
        returned = payload.get("project")
        if isinstance(returned, dict):
            # Remote may normalize fields; fill gaps from what we sent
            return Project.from_dict({**project.to_dict(), **returned})
        return project

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> None:
        body = dict(updates)
        if "tags" in body:
            body["tags"] = encode_tags(decode_tags(body["tags"]))
        payload = await self._request("PUT", "projects", json={**body, "id": project_id})
        self._require_success(payload, "project update")

    async def delete_project(self, project_id: str) -> None:
        payload = await self._request("DELETE", "projects", params={"id": project_id})
        self._require_success(payload, "project delete")

    # ═══════════════════════════════════════════════════════════════════════════
    # CATEGORIES
    # ═══════════════════════════════════════════════════════════════════════════

    async def list_categories(self) -> List[Category]:
        payload = await self._request("GET", "categories")
        return [Category.from_dict(item) for item in self._require_list(payload, "categories")]

    async def upsert_category(self, category: Category) -> Category:
        payload = await self._request("POST", "categories", json=category.to_dict())
        self._require_success(payload, "category insert")
        returned = payload.get("category")
        if isinstance(returned, dict):
            return Category.from_dict({**category.to_dict(), **returned})
        return category

    async def update_category(self, category_id: str, updates: Dict[str, Any]) -> None:
        payload = await self._request("PUT", "categories", json={**updates, "id": category_id})
        self._require_success(payload, "category update")

    async def delete_category(self, category_id: str) -> None:
        payload = await self._request("DELETE", "categories", params={"id": category_id})
        self._require_success(payload, "category delete")

    # ═══════════════════════════════════════════════════════════════════════════
    # BULK
    # ═══════════════════════════════════════════════════════════════════════════

    async def bulk_upsert(
        self,
        projects: List[Project],
        categories: List[Category],
    ) -> SyncAllResult:
        payload = await self._request(
            "POST",
            "sync",
            json={
                "projects": [p.to_remote() for p in projects],
                "categories": [c.to_dict() for c in categories],
            },
        )
        self._require_success(payload, "bulk sync")
        results = payload.get("results")
        if not isinstance(results, dict):
            raise RemoteDataError("Sync response is missing 'results'", expected="object",
                                  got=type(results).__name__)
        try:
            return SyncAllResult(
                projects_synced=int(results.get("projects", 0)),
                categories_synced=int(results.get("categories", 0)),
            )
        except (TypeError, ValueError) as e:
            raise RemoteDataError("Sync counts are not integers", details=str(e)) from e
