"""Relational store client for recordings and analysis artifacts.

Talks to a PostgREST (Supabase) API over httpx. Every mutation the
pipeline depends on is a single HTTP call: completing a recording is one
PATCH carrying both transcript and status, and persisting an analysis run is
one call to the process_recording_results database function, which runs in
a single transaction.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from recording_processor.models import Recording, RecordingStatus
from recording_processor.utils.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class RecordStore:
    """Client for recording/task/material/offer rows via PostgREST.

    Reads configuration from environment variables:
        SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or os.environ.get("SUPABASE_URL", "")).rstrip("/")
        self.api_key = api_key or os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

        if not self.base_url:
            raise PersistenceError("SUPABASE_URL is required", operation="init")
        if not self.api_key:
            raise PersistenceError(
                "SUPABASE_SERVICE_ROLE_KEY is required", operation="init"
            )

        self._client = client or httpx.AsyncClient(timeout=30.0)

    def _headers(self, representation: bool = False) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    async def close(self) -> None:
        """Close the shared HTTP client and release connection pool."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        recording_id: str | None = None,
        params: dict[str, str] | None = None,
        json: Any = None,
        representation: bool = False,
    ) -> Any:
        url = f"{self.base_url}/rest/v1/{path}"
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._headers(representation),
                params=params,
                json=json,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PersistenceError(
                f"{operation} failed: HTTP {exc.response.status_code} "
                f"{exc.response.text[:300]}",
                recording_id=recording_id,
                operation=operation,
            ) from exc
        except httpx.RequestError as exc:
            raise PersistenceError(
                f"{operation} failed: {exc}",
                recording_id=recording_id,
                operation=operation,
            ) from exc

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _to_recording(rows: Any, recording_id: str, operation: str) -> Recording:
        if not rows:
            raise NotFoundError(
                f"Recording {recording_id} does not exist",
                recording_id=recording_id,
                operation=operation,
            )
        try:
            return Recording.from_row(rows[0])
        except (KeyError, ValueError) as exc:
            raise PersistenceError(
                f"{operation} returned an invalid recording row: {exc}",
                recording_id=recording_id,
                operation=operation,
            ) from exc

    async def create_recording(
        self, project_id: str, blob_ref: str, name: str = ""
    ) -> Recording:
        """Insert a recording row in the processing state."""
        rows = await self._request(
            "POST",
            "recordings",
            operation="create_recording",
            json={
                "project_id": project_id,
                "file_path": blob_ref,
                "name": name,
                "status": RecordingStatus.PROCESSING.value,
            },
            representation=True,
        )
        if not rows:
            raise PersistenceError(
                "create_recording returned no row", operation="create_recording"
            )
        return self._to_recording(rows, "", "create_recording")

    async def get_recording(self, recording_id: str) -> Recording:
        rows = await self._request(
            "GET",
            "recordings",
            operation="get_recording",
            recording_id=recording_id,
            params={"id": f"eq.{recording_id}", "select": "*"},
        )
        return self._to_recording(rows, recording_id, "get_recording")

    async def complete_recording(self, recording_id: str, transcript: str) -> Recording:
        """Attach a transcript and mark the recording completed in one write."""
        rows = await self._request(
            "PATCH",
            "recordings",
            operation="complete_recording",
            recording_id=recording_id,
            params={"id": f"eq.{recording_id}"},
            json={
                "transcript": transcript,
                "status": RecordingStatus.COMPLETED.value,
            },
            representation=True,
        )
        return self._to_recording(rows, recording_id, "complete_recording")

    async def delete_recording(self, recording_id: str) -> None:
        await self._request(
            "DELETE",
            "recordings",
            operation="delete_recording",
            recording_id=recording_id,
            params={"id": f"eq.{recording_id}"},
        )

    async def process_recording_results(
        self,
        recording_id: str,
        project_id: str,
        tasks: list[dict[str, Any]],
        materials: list[dict[str, Any]],
        offer: dict[str, Any],
    ) -> None:
        """Insert tasks, materials and offer in a single transaction."""
        await self._request(
            "POST",
            "rpc/process_recording_results",
            operation="process_recording_results",
            recording_id=recording_id,
            json={
                "p_recording_id": recording_id,
                "p_project_id": project_id,
                "p_tasks": tasks,
                "p_materials": materials,
                "p_offer": offer,
            },
        )
        logger.info(
            "Persisted %d tasks, %d materials and 1 offer",
            len(tasks),
            len(materials),
            extra={"recording_id": recording_id, "project_id": project_id},
        )

    async def has_offers(self, recording_id: str) -> bool:
        """Whether any analysis run for this recording has been persisted."""
        rows = await self._request(
            "GET",
            "offers",
            operation="has_offers",
            recording_id=recording_id,
            params={
                "recording_id": f"eq.{recording_id}",
                "select": "id",
                "limit": "1",
            },
        )
        return bool(rows)
