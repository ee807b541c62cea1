"""
Tests for v3client/services/http_client.py

Covers:
  - request shape: URL, cookie and identity headers, JSON body
  - endpoint allow-list
  - non-2xx responses become ProtocolError with a bounded body snippet
  - deadlines on plain calls and on streamed bodies
  - the typed endpoint wrappers
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from v3client.errors import ProtocolError, RequestTimeout
from v3client.tests.conftest import SPACE_ID, TOKEN, USER_ID, ndjson_body, wrap

pytestmark = pytest.mark.asyncio(loop_scope="session")


def respond(payload, status=200, seen=None):
    """Handler answering every request with ``payload``; records requests in ``seen``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=payload)

    return handler


def body_of(request: httpx.Request):
    return json.loads(request.content)


class TestRequestShape:
    async def test_headers_and_url(self, make_client):
        seen = []
        client = make_client(respond({"ok": True}, seen=seen))
        assert await client.post("getSpaces", {}) == {"ok": True}

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://notion.test/api/v3/getSpaces"
        assert request.headers["cookie"] == f"token_v2={TOKEN}"
        assert request.headers["x-notion-active-user-header"] == USER_ID
        assert request.headers["x-notion-space-id"] == SPACE_ID
        assert request.headers["content-type"] == "application/json"

    async def test_unknown_endpoint_rejected(self, make_client):
        client = make_client(respond({}))
        with pytest.raises(ValueError):
            await client.post("deleteEverything", {})

    async def test_stream_endpoint_rejected_by_post(self, make_client):
        client = make_client(respond({}))
        with pytest.raises(ValueError):
            await client.post("runInferenceTranscript", {})

    async def test_plain_endpoint_rejected_by_stream(self, make_client):
        client = make_client(respond({}))
        with pytest.raises(ValueError):
            await anext(client.stream("search", {}))


class TestErrors:
    async def test_protocol_error(self, make_client):
        def handler(request):
            return httpx.Response(401, text="x" * 500)

        client = make_client(handler)
        with pytest.raises(ProtocolError) as exc:
            await client.post("loadPageChunk", {})

        err = exc.value
        assert err.status == 401
        assert err.endpoint == "loadPageChunk"
        assert len(err.body_snippet) == 200
        assert "401 Unauthorized on loadPageChunk" in str(err)
        assert "token_v2" in err.guidance

    async def test_post_timeout(self, make_client):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        client = make_client(handler)
        with pytest.raises(RequestTimeout) as exc:
            await client.post("getSpaces", {}, timeout=0.05)
        assert exc.value.endpoint == "getSpaces"
        assert exc.value.timeout == 0.05

    async def test_httpx_timeout_mapped(self, make_client):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler)
        with pytest.raises(RequestTimeout):
            await client.post("search", {})


class TestStream:
    async def test_chunks_in_order(self, make_client):
        async def body():
            yield b'{"a":1}\n'
            yield b'{"b":2}\n'

        def handler(request):
            return httpx.Response(200, content=body())

        client = make_client(handler)
        chunks = [c async for c in client.stream("runInferenceTranscript", {})]
        assert b"".join(chunks) == b'{"a":1}\n{"b":2}\n'

    async def test_error_status(self, make_client):
        def handler(request):
            return httpx.Response(429, text="slow down")

        client = make_client(handler)
        with pytest.raises(ProtocolError) as exc:
            await anext(client.stream("runInferenceTranscript", {}))
        assert exc.value.status == 429
        assert exc.value.body_snippet == "slow down"

    async def test_deadline_covers_body(self, make_client):
        async def body():
            yield b'{"a":1}\n'
            await asyncio.sleep(5)
            yield b'{"b":2}\n'

        def handler(request):
            return httpx.Response(200, content=body())

        client = make_client(handler)
        received = []
        with pytest.raises(RequestTimeout):
            async for chunk in client.stream("runInferenceTranscript", {}, timeout=0.1):
                received.append(chunk)
        assert received == [b'{"a":1}\n']

    async def test_run_inference_transcript_posts_body(self, make_client):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=ndjson_body({"type": "title", "value": "x"}))

        client = make_client(handler)
        chunks = [c async for c in client.run_inference_transcript({"threadId": "t1"})]
        assert b"".join(chunks) == b'{"type": "title", "value": "x"}\n'
        assert body_of(seen[0]) == {"threadId": "t1"}


class TestWrappers:
    async def test_load_page_chunk(self, make_client):
        seen = []
        payload = {
            "recordMap": wrap(block={"p1": {"id": "p1", "alive": True}}),
            "cursor": {"stack": [[{"table": "block", "id": "p1", "index": 50}]]},
        }
        client = make_client(respond(payload, seen=seen))
        records, cursor = await client.load_page_chunk("p1", limit=50)

        assert records.block("p1")["id"] == "p1"
        assert cursor["stack"]
        body = body_of(seen[0])
        assert body["pageId"] == "p1"
        assert body["limit"] == 50
        assert body["cursor"] == {"stack": []}
        assert body["chunkNumber"] == 0

    async def test_load_page_chunk_without_cursor(self, make_client):
        client = make_client(respond({"recordMap": {}}))
        _, cursor = await client.load_page_chunk("p1")
        assert cursor == {"stack": []}

    async def test_sync_record_values_unwraps_double_nesting(self, make_client):
        seen = []
        payload = {"recordMap": {"comment": {"c1": {"value": {"value": {"id": "c1"}, "role": "reader"}}}}}
        client = make_client(respond(payload, seen=seen))
        records = await client.sync_record_values([("comment", "c1")])

        assert records.comment("c1") == {"id": "c1"}
        assert body_of(seen[0]) == {"requests": [{"pointer": {"table": "comment", "id": "c1"}, "version": 0}]}

    async def test_query_collection(self, make_client):
        seen = []
        payload = {
            "result": {"reducerResults": {"collection_group_results": {"blockIds": ["r1", "r2"]}}},
            "recordMap": wrap(block={"r1": {"id": "r1"}}),
        }
        client = make_client(respond(payload, seen=seen))
        ids, records = await client.query_collection("c1", "v1", query_filter={"operator": "and"}, limit=10)

        assert ids == ["r1", "r2"]
        assert records.block("r1") == {"id": "r1"}
        body = body_of(seen[0])
        assert body["query2"] == {"filter": {"operator": "and"}}
        assert body["loader"]["reducers"]["collection_group_results"]["limit"] == 10

    async def test_search_scopes_to_space(self, make_client):
        seen = []
        client = make_client(respond({"results": []}, seen=seen))
        await client.search("roadmap")
        body = body_of(seen[0])
        assert body["type"] == "BlocksInSpace"
        assert body["spaceId"] == SPACE_ID

    async def test_search_in_ancestor(self, make_client):
        seen = []
        client = make_client(respond({"results": []}, seen=seen))
        await client.search("roadmap", ancestor_id="p1")
        body = body_of(seen[0])
        assert body["type"] == "BlocksInAncestor"
        assert body["ancestorId"] == "p1"

    async def test_get_spaces(self, make_client):
        seen = []
        client = make_client(respond({"u1": {"space": {}}}, seen=seen))
        assert await client.get_spaces() == {"u1": {"space": {}}}
        assert str(seen[0].url).endswith("/getSpaces")
        assert body_of(seen[0]) == {}

    async def test_load_user_content(self, make_client):
        payload = {"recordMap": wrap(
            notion_user={"u1": {"id": "u1", "given_name": "Ada"}},
            space={"sp": {"id": "sp", "name": "Acme"}},
        )}
        client = make_client(respond(payload))
        records = await client.load_user_content()
        assert records.user("u1")["given_name"] == "Ada"
        assert records.first_space()["name"] == "Acme"

    async def test_available_models(self, make_client):
        client = make_client(respond({"models": [{"model": "m1"}]}))
        assert await client.get_available_models() == [{"model": "m1"}]

    async def test_save_transactions(self, make_client):
        seen = []
        client = make_client(respond({}, seen=seen))
        ops = [{"pointer": {"table": "block", "id": "b1", "spaceId": SPACE_ID}, "path": [], "command": "set", "args": {}}]
        await client.save_transactions(ops)

        body = body_of(seen[0])
        assert body["requestId"]
        [transaction] = body["transactions"]
        assert transaction["spaceId"] == SPACE_ID
        assert transaction["operations"] == ops

    async def test_context_manager_closes(self, make_client):
        client = make_client(respond({}))
        async with client:
            pass
        assert client._client.is_closed
