"""
Shared pytest fixtures for dvspine tests.

This module provides:
- ``settings``: StoreSettings pointing at a fake organisation with a static token
- ``FakeStore``: an in-memory Dataverse-style store behind ``httpx.MockTransport``
- ``make_client``: a MetadataClient wired to any request handler

Usage:
    @pytest.mark.asyncio
    async def test_something(fake_store, settings):
        async with fake_store.session(settings) as session:
            await session.entity_sets.resolve("batches")
        assert fake_store.count("GET", "EntityDefinitions") == 1
"""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Callable
from typing import Any
from urllib.parse import unquote

import httpx
import pytest

from dvspine.core.settings import StoreSettings, clear_settings_cache
from dvspine.store.client import MetadataClient
from dvspine.store.session import StoreSession

ORG_URL = "https://contoso.crm.dynamics.com"
API_ROOT = "/api/data/v9.2"

_ENTITY_RE = re.compile(r"^/EntityDefinitions\(LogicalName='([^']+)'\)$")
_ATTRIBUTE_RE = re.compile(r"^/EntityDefinitions\(LogicalName='([^']+)'\)/Attributes\(LogicalName='([^']+)'\)$")
_ATTRIBUTES_RE = re.compile(r"^/EntityDefinitions\(LogicalName='([^']+)'\)/Attributes$")
_ENDSWITH_RE = re.compile(r"endswith\(LogicalName,'_([^']+)'\)")
_SET_EQ_RE = re.compile(r"EntitySetName eq '([^']+)'")
_RECORD_RE = re.compile(r"^/([A-Za-z0-9_]+)\(([^)]+)\)$")


# =============================================================================
# Fake store
# =============================================================================


class FakeStore:
    """In-memory store speaking just enough OData for the engine.

    Entities are keyed by logical name. Creating an entity assigns the
    collection id ``<logical_name>s`` unless one is given. Writing a record
    rejects any property the entity does not have with the Dataverse
    ``Invalid property '<name>'`` diagnostic.

    ``script(method, path, *responses)`` queues canned responses that are
    served, in order, to matching requests before the default behaviour.
    """

    def __init__(self) -> None:
        self.entities: dict[str, dict[str, Any]] = {}
        self.records: dict[str, dict[str, dict[str, Any]]] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self._scripts: list[tuple[str, str, list[httpx.Response]]] = []

    # ── Setup ────────────────────────────────────────────────────────

    def add_entity(
        self,
        logical_name: str,
        attributes: list[str] | tuple[str, ...] = (),
        *,
        entity_set: str | None = None,
        primary: str = "toba_name",
    ) -> dict[str, Any]:
        entity = {
            "LogicalName": logical_name,
            "EntitySetName": entity_set or f"{logical_name}s",
            "MetadataId": str(uuid.uuid4()),
            "attributes": [f"{logical_name}id", primary, *attributes],
        }
        self.entities[logical_name] = entity
        self.records.setdefault(entity["EntitySetName"], {})
        return entity

    def script(self, method: str, path: str, *responses: httpx.Response) -> None:
        self._scripts.append((method, path, list(responses)))

    def session(self, settings: StoreSettings, **kwargs: Any) -> StoreSession:
        return StoreSession(settings, transport=self.transport(), **kwargs)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ── Inspection ───────────────────────────────────────────────────

    def count(self, method: str, fragment: str = "") -> int:
        return sum(1 for m, p, _ in self.requests if m == method and fragment in p)

    def posts(self, fragment: str = "") -> list[Any]:
        return [body for m, p, body in self.requests if m == "POST" and fragment in p]

    def entity_by_set(self, entity_set: str) -> dict[str, Any] | None:
        for entity in self.entities.values():
            if entity["EntitySetName"] == entity_set:
                return entity
        return None

    # ── Transport ────────────────────────────────────────────────────

    def handle(self, request: httpx.Request) -> httpx.Response:
        raw = unquote(str(request.url)).split(API_ROOT, 1)[1]
        path, _, query = raw.partition("?")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, raw, body))

        for method, fragment, queued in self._scripts:
            if method == request.method and fragment in raw and queued:
                return queued.pop(0)

        if path == "/WhoAmI":
            return httpx.Response(200, json={"UserId": "u-1", "OrganizationId": "o-1"})
        if path.startswith("/EntityDefinitions"):
            return self._metadata(request.method, path, query, body)
        if path in ("/Microsoft.Dynamics.CRM.CreateEntity", "/CreateEntity"):
            return self._create_entity(body["Entity"]["SchemaName"], body["PrimaryAttribute"]["SchemaName"])
        return self._data(request.method, path, body)

    def _metadata(self, method: str, path: str, query: str, body: Any) -> httpx.Response:
        if path == "/EntityDefinitions":
            if method == "POST":
                return self._create_entity(body["SchemaName"], body["PrimaryNameAttribute"])
            match = _ENDSWITH_RE.search(query)
            if match:
                suffix = "_" + match.group(1).lower()
                rows = [e for e in self.entities.values() if e["LogicalName"].lower().endswith(suffix)]
            else:
                match = _SET_EQ_RE.search(query)
                wanted = match.group(1) if match else None
                rows = [e for e in self.entities.values() if e["EntitySetName"] == wanted]
            return httpx.Response(200, json={"value": [_definition(e) for e in rows]})

        match = _ENTITY_RE.match(path)
        if match:
            entity = self.entities.get(match.group(1))
            if entity is None:
                return _not_found()
            return httpx.Response(200, json=_definition(entity))

        match = _ATTRIBUTE_RE.match(path)
        if match:
            entity = self.entities.get(match.group(1))
            if entity is None or match.group(2) not in entity["attributes"]:
                return _not_found()
            return httpx.Response(200, json={"LogicalName": match.group(2), "MetadataId": str(uuid.uuid4())})

        match = _ATTRIBUTES_RE.match(path)
        if match:
            entity = self.entities.get(match.group(1))
            if entity is None:
                return _not_found()
            if method == "POST":
                entity["attributes"].append(body["SchemaName"].lower())
                return httpx.Response(204)
            return httpx.Response(200, json={"value": [{"LogicalName": a} for a in entity["attributes"]]})

        return _not_found()

    def _create_entity(self, schema_name: str, primary: str) -> httpx.Response:
        self.add_entity(schema_name.lower(), primary=primary.lower())
        return httpx.Response(204)

    def _data(self, method: str, path: str, body: Any) -> httpx.Response:
        match = _RECORD_RE.match(path)
        if match:
            collection, record_id = match.groups()
            rows = self.records.get(collection)
            if rows is None or record_id not in rows:
                return _not_found()
            if method == "DELETE":
                del rows[record_id]
                return httpx.Response(204)
            if method == "PATCH":
                rows[record_id].update(body or {})
                return httpx.Response(204)
            return httpx.Response(200, json=rows[record_id])

        collection = path.lstrip("/")
        entity = self.entity_by_set(collection)
        if entity is None:
            return _not_found()
        if method == "GET":
            return httpx.Response(200, json={"value": list(self.records[collection].values())})

        for key in body:
            name = key.split("@", 1)[0]
            if name.lower() not in entity["attributes"]:
                return httpx.Response(
                    400,
                    json={
                        "error": {
                            "code": "0x80060888",
                            "message": f"Invalid property '{name}' was found in entity "
                            f"'Microsoft.Dynamics.CRM.{entity['LogicalName']}'.",
                        }
                    },
                )
        record_id = str(uuid.uuid4())
        self.records[collection][record_id] = {f"{entity['LogicalName']}id": record_id, **body}
        return httpx.Response(
            204, headers={"OData-EntityId": f"{ORG_URL}{API_ROOT}/{collection}({record_id})"}
        )


def _definition(entity: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in entity.items() if k != "attributes"}


def _not_found() -> httpx.Response:
    return httpx.Response(404, json={"error": {"code": "0x80060891", "message": "Resource not found"}})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clean_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> StoreSettings:
    return StoreSettings(_env_file=None, store_url=ORG_URL, access_token="test-token")  # type: ignore[call-arg]


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def make_client(settings) -> Callable[[Callable[[httpx.Request], httpx.Response]], MetadataClient]:
    """Build a MetadataClient whose requests go to ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> MetadataClient:
        return MetadataClient.from_settings(settings, transport=httpx.MockTransport(handler))

    return _make
