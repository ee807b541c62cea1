"""
HTTP transport for the v3 internal API.

Every call is a JSON POST to ``{base_url}/{endpoint}`` with the token_v2
session cookie and the acting user attached as headers. Each call has a
deadline covering the whole exchange; for the streaming inference call that
includes reading the body.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any

import httpx

from v3client.config import Settings, settings as default_settings
from v3client.errors import ProtocolError, RequestTimeout
from v3engine.record_map import COLLECTION, RecordMap

logger = logging.getLogger(__name__)

ENDPOINTS = frozenset({
    "getSpaces",
    "loadUserContent",
    "loadPageChunk",
    "syncRecordValuesMain",
    "queryCollection",
    "search",
    "saveTransactions",
    "getBacklinksForBlock",
    "getSnapshotsList",
    "getActivityLog",
    "getAvailableModels",
    "getInferenceTranscriptsForUser",
    "markInferenceTranscriptSeen",
    "runInferenceTranscript",
})

SLOW_ENDPOINTS = frozenset({"queryCollection"})
STREAM_ENDPOINTS = frozenset({"runInferenceTranscript"})


class V3HttpClient:
    """Async client for the v3 endpoint surface."""

    def __init__(
        self,
        token_v2: str,
        user_id: str,
        space_id: str,
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_id = user_id
        self.space_id = space_id
        self.settings = settings or default_settings
        self.base_url = self.settings.BASE_URL.rstrip("/")
        self._token_v2 = token_v2
        # The deadline is enforced per call below, so httpx gets no default.
        self._client = httpx.AsyncClient(transport=transport, timeout=None)

    async def __aenter__(self) -> V3HttpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Cookie": f"token_v2={self._token_v2}",
            "x-notion-active-user-header": self.user_id,
            "x-notion-space-id": self.space_id,
        }

    def _deadline_for(self, endpoint: str, timeout: float | None) -> float:
        if timeout is not None:
            return timeout
        if endpoint in STREAM_ENDPOINTS:
            return self.settings.STREAM_TIMEOUT
        if endpoint in SLOW_ENDPOINTS:
            return self.settings.SLOW_TIMEOUT
        return self.settings.TIMEOUT

    def _check_endpoint(self, endpoint: str) -> None:
        if endpoint not in ENDPOINTS:
            raise ValueError(f"Unknown v3 endpoint: {endpoint!r}")

    @staticmethod
    async def _raise_for_status(response: httpx.Response, endpoint: str) -> None:
        if response.is_success:
            return
        await response.aread()
        logger.warning("v3 %s failed with HTTP %d", endpoint, response.status_code)
        raise ProtocolError(response.status_code, endpoint, response.text, response.reason_phrase)

    # -- raw calls ------------------------------------------------------------

    async def post(self, endpoint: str, body: dict[str, Any], timeout: float | None = None) -> Any:
        """
        POST ``body`` and return the decoded JSON response.

        Raises:
            ValueError: if the endpoint is not part of the known surface
            RequestTimeout: if the deadline passes first
            ProtocolError: on a non-2xx response
        """
        self._check_endpoint(endpoint)
        if endpoint in STREAM_ENDPOINTS:
            raise ValueError(f"{endpoint} returns a stream; use stream()")
        deadline = self._deadline_for(endpoint, timeout)

        try:
            async with asyncio.timeout(deadline):
                response = await self._client.post(
                    f"{self.base_url}/{endpoint}",
                    json=body,
                    headers=self._headers(),
                )
                await self._raise_for_status(response, endpoint)
        except (TimeoutError, httpx.TimeoutException):
            logger.warning("v3 %s timed out after %ss", endpoint, deadline)
            raise RequestTimeout(endpoint, deadline) from None

        logger.info("v3 %s -> %d", endpoint, response.status_code)
        return response.json()

    async def stream(
        self, endpoint: str, body: dict[str, Any], timeout: float | None = None
    ) -> AsyncIterator[bytes]:
        """
        POST ``body`` and yield the raw response body as it arrives.

        Only the inference call streams. The deadline covers connecting and
        every chunk read; breaking out early releases the connection.
        """
        self._check_endpoint(endpoint)
        if endpoint not in STREAM_ENDPOINTS:
            raise ValueError(f"{endpoint} does not stream; use post()")
        deadline = self._deadline_for(endpoint, timeout)
        expires_at = asyncio.get_running_loop().time() + deadline

        request = self._client.build_request(
            "POST",
            f"{self.base_url}/{endpoint}",
            json=body,
            headers=self._headers(),
        )

        try:
            async with asyncio.timeout_at(expires_at):
                response = await self._client.send(request, stream=True)
        except (TimeoutError, httpx.TimeoutException):
            logger.warning("v3 %s timed out after %ss", endpoint, deadline)
            raise RequestTimeout(endpoint, deadline) from None

        try:
            try:
                async with asyncio.timeout_at(expires_at):
                    await self._raise_for_status(response, endpoint)
            except (TimeoutError, httpx.TimeoutException):
                raise RequestTimeout(endpoint, deadline) from None

            chunks = response.aiter_bytes()
            received = 0
            while True:
                try:
                    async with asyncio.timeout_at(expires_at):
                        chunk = await anext(chunks)
                except StopAsyncIteration:
                    break
                except (TimeoutError, httpx.TimeoutException):
                    logger.warning("v3 %s stream timed out after %ss", endpoint, deadline)
                    raise RequestTimeout(endpoint, deadline) from None
                received += len(chunk)
                yield chunk
            logger.info("v3 %s stream finished, %d bytes", endpoint, received)
        finally:
            await response.aclose()

    # -- read endpoints -------------------------------------------------------

    async def get_spaces(self) -> dict[str, Any]:
        return await self.post("getSpaces", {})

    async def load_user_content(self) -> RecordMap:
        return RecordMap.from_response(await self.post("loadUserContent", {}))

    async def load_page_chunk(
        self,
        page_id: str,
        *,
        limit: int = 100,
        cursor: dict[str, Any] | None = None,
        chunk_number: int = 0,
    ) -> tuple[RecordMap, dict[str, Any]]:
        """One chunk of a page. Returns the records and the next cursor."""
        data = await self.post("loadPageChunk", {
            "pageId": page_id,
            "limit": limit,
            "cursor": cursor or {"stack": []},
            "chunkNumber": chunk_number,
            "verticalColumns": False,
        })
        return RecordMap.from_response(data), data.get("cursor") or {"stack": []}

    async def sync_record_values(self, pointers: list[tuple[str, str]]) -> RecordMap:
        """Fetch records by ``(table, id)``. Entries come back double-wrapped."""
        requests = [{"pointer": {"table": table, "id": record_id}, "version": 0} for table, record_id in pointers]
        return RecordMap.from_response(await self.post("syncRecordValuesMain", {"requests": requests}))

    async def fetch_collection(self, collection_id: str) -> dict[str, Any] | None:
        records = await self.sync_record_values([(COLLECTION, collection_id)])
        return records.collection(collection_id)

    async def query_collection(
        self,
        collection_id: str,
        collection_view_id: str,
        *,
        query_filter: Any = None,
        sort: Any = None,
        limit: int = 999,
        search_query: str = "",
        timezone: str = "UTC",
    ) -> tuple[list[str], RecordMap]:
        """Rows of a database view. Returns the row block ids and the records."""
        query2: dict[str, Any] = {}
        if query_filter:
            query2["filter"] = query_filter
        if sort:
            query2["sort"] = sort
        data = await self.post("queryCollection", {
            "collection": {"id": collection_id},
            "collectionView": {"id": collection_view_id},
            "loader": {
                "type": "reducer",
                "reducers": {
                    "collection_group_results": {
                        "type": "results",
                        "limit": limit,
                        "loadContentCover": False,
                    },
                },
                "searchQuery": search_query,
                "userTimeZone": timezone,
            },
            "query2": query2,
        })
        reducer = (data.get("result") or {}).get("reducerResults", {}).get("collection_group_results", {})
        block_ids = reducer.get("blockIds") or (data.get("result") or {}).get("blockIds") or []
        return block_ids, RecordMap.from_response(data)

    async def search(self, query: str, *, ancestor_id: str | None = None, limit: int = 20) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": "BlocksInAncestor" if ancestor_id else "BlocksInSpace",
            "query": query,
            "limit": limit,
            "sort": {"field": "relevance"},
            "source": "quick_find_input_change",
            "filters": {
                "isDeletedOnly": False,
                "excludeTemplates": False,
                "isNavigableOnly": False,
                "requireEditPermissions": False,
                "ancestors": [],
                "createdBy": [],
                "editedBy": [],
                "lastEditedTime": {},
                "createdTime": {},
            },
        }
        if ancestor_id:
            body["ancestorId"] = ancestor_id
        else:
            body["spaceId"] = self.space_id
        return await self.post("search", body)

    async def get_backlinks_for_block(self, block_id: str) -> tuple[list[dict[str, Any]], RecordMap]:
        data = await self.post("getBacklinksForBlock", {"blockId": block_id})
        return data.get("backlinks") or [], RecordMap.from_response(data)

    async def get_snapshots_list(self, block_id: str, size: int = 20) -> list[dict[str, Any]]:
        data = await self.post("getSnapshotsList", {"blockId": block_id, "size": size})
        return data.get("snapshots") or []

    async def get_activity_log(self, *, navigable_block_id: str | None = None, limit: int = 20) -> dict[str, Any]:
        body: dict[str, Any] = {"spaceId": self.space_id, "limit": limit}
        if navigable_block_id:
            body["navigableBlockId"] = navigable_block_id
        return await self.post("getActivityLog", body)

    # -- AI endpoints ---------------------------------------------------------

    async def get_available_models(self) -> list[dict[str, Any]]:
        data = await self.post("getAvailableModels", {"spaceId": self.space_id})
        return data.get("models") or []

    async def get_inference_transcripts_for_user(self, limit: int | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"spaceId": self.space_id}
        if limit is not None:
            body["limit"] = limit
        return await self.post("getInferenceTranscriptsForUser", body)

    async def mark_inference_transcript_seen(self, thread_id: str) -> dict[str, Any]:
        return await self.post("markInferenceTranscriptSeen", {"spaceId": self.space_id, "threadId": thread_id})

    def run_inference_transcript(self, body: dict[str, Any], timeout: float | None = None) -> AsyncIterator[bytes]:
        return self.stream("runInferenceTranscript", body, timeout=timeout)

    # -- writes ---------------------------------------------------------------

    async def save_transactions(self, operations: list[dict[str, Any]]) -> None:
        await self.post("saveTransactions", {
            "requestId": str(uuid.uuid4()),
            "transactions": [
                {
                    "id": str(uuid.uuid4()),
                    "spaceId": self.space_id,
                    "operations": operations,
                },
            ],
        })
        logger.info("v3 saveTransactions submitted %d operations", len(operations))
