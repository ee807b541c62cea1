"""
Pytest configuration and fixtures for v3client tests.

HTTP-level tests run the real V3HttpClient over httpx.MockTransport, so no
request ever leaves the process.
"""

from __future__ import annotations

import json

import httpx
import pytest
import pytest_asyncio

from v3client.config import Settings
from v3client.services.http_client import V3HttpClient

TOKEN = "tok-123"
USER_ID = "user-1"
SPACE_ID = "space-1"


def ndjson_body(*events) -> bytes:
    return "".join(json.dumps(e) + "\n" for e in events).encode()


def wrap(**tables):
    """{table: {id: entity}} -> record-map wire shape."""
    return {
        table: {eid: {"value": entity, "role": "editor"} for eid, entity in rows.items()}
        for table, rows in tables.items()
    }


@pytest.fixture
def test_settings():
    s = Settings()
    s.BASE_URL = "https://notion.test/api/v3"
    return s


@pytest_asyncio.fixture(loop_scope="session")
async def make_client(test_settings):
    """Factory: V3HttpClient whose requests are answered by ``handler``."""
    clients = []

    def factory(handler):
        client = V3HttpClient(
            TOKEN,
            USER_ID,
            SPACE_ID,
            settings=test_settings,
            transport=httpx.MockTransport(handler),
        )
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()
