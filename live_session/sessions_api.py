"""
Sessions REST collaborator.

The live protocol starts from a session that already exists. A host creates
one from a content collection over HTTP and then connects a SessionClient
with the returned code and id.

Response envelope:
    {"success": true, "message": "...", "data": {"sessionId": "...", "sessionCode": "..."}}
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.config.logging import get_logger
from shared.config.settings import settings
from live_session.components.core.exceptions import LiveSessionError

logger = get_logger(__name__)


class SessionApiError(LiveSessionError):
    """The sessions endpoint failed or returned an unusable response."""

    def __init__(self, detail: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(detail)


@dataclass(frozen=True, slots=True)
class CreatedSession:
    session_id: str
    session_code: str


class _CreatedSessionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    session_code: str = Field(alias="sessionCode", min_length=1)


class _ApiResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = True
    message: str | None = None
    data: Any = None


class SessionsApi:
    """
    HTTP client for the sessions endpoint.

    Reuses one pooled httpx.AsyncClient, created lazily on first request
    so the object can be constructed outside an event loop.

    Usage:
        async with SessionsApi(token=token) as api:
            created = await api.create_session("collection-1")
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self._token = token
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None and not self._client.is_closed:
            return self._client

        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.AsyncClient(
                    timeout=self.timeout,
                    limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                )
                self._owns_client = True
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def create_session(self, collection_id: str) -> CreatedSession:
        """
        Create a live session from a collection.

        Raises:
            SessionApiError: On transport failure, a non-2xx status, an
                unsuccessful envelope, or a response without id and code.
        """
        if not collection_id:
            raise ValueError("collection_id is required")

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.base_url}/sessions",
                json={"collectionId": collection_id},
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Create session rejected",
                collection_id=collection_id,
                status_code=e.response.status_code,
            )
            raise SessionApiError(
                f"Create session failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("Create session request failed", collection_id=collection_id, error=str(e))
            raise SessionApiError(f"Create session request failed: {e}") from e

        try:
            envelope = _ApiResponse.model_validate(response.json())
        except ValueError as e:
            raise SessionApiError("Create session returned an invalid body", response.status_code) from e

        if not envelope.success:
            raise SessionApiError(
                envelope.message or "Create session was not successful",
                status_code=response.status_code,
            )

        try:
            data = _CreatedSessionData.model_validate(envelope.data)
        except ValidationError as e:
            raise SessionApiError(
                "Create session response is missing sessionId or sessionCode",
                status_code=response.status_code,
            ) from e

        logger.info(
            "Session created",
            collection_id=collection_id,
            session_id=data.session_id,
            session_code=data.session_code,
        )
        return CreatedSession(session_id=data.session_id, session_code=data.session_code)

    async def close(self) -> None:
        """Close the HTTP client if this object created it."""
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> SessionsApi:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
