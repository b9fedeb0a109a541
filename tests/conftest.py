from __future__ import annotations

import re
from pathlib import Path
from types import SimpleNamespace

import pytest

import film_service
from film_settings import Settings

FILMS_CSV = Path(__file__).resolve().parent.parent / "films.csv"
DEFAULT_INDEX = "_default_idx"


class FakeIndex:
    def __init__(self, collection: str, field: str, params: dict, name: str):
        self.collection = collection
        self.field = field
        self.params = params
        self.name = name

    def to_dict(self) -> dict:
        return {"collection": self.collection, "field": self.field, "index_name": self.name, "index_param": self.params}


class FakeMilvus:
    """In-process stand-in for the pymilvus entry points used by FilmService."""

    def __init__(self):
        self.collections: dict[str, dict] = {}
        self.connected: set[str] = set()
        self.events: list[tuple] = []
        self.searches: list[dict] = []

        fake = self

        class _Connections:
            def connect(self, alias, **kwargs):
                fake.connected.add(alias)
                fake.events.append(("connect", alias, kwargs))

            def disconnect(self, alias):
                fake.connected.discard(alias)
                fake.events.append(("disconnect", alias))

        class _Utility:
            def has_collection(self, name, using="default"):
                return name in fake.collections

            def list_collections(self, using="default"):
                return list(fake.collections)

            def drop_collection(self, name, using="default"):
                fake.collections.pop(name)
                fake.events.append(("drop_collection", name))

        class _MilvusClient:
            def __init__(self, uri, token=""):
                self.uri = uri

            def get_collection_stats(self, collection_name):
                return {"row_count": len(fake.collections[collection_name]["rows"])}

            def close(self):
                pass

        self.connections = _Connections()
        self.utility = _Utility()
        self.MilvusClient = _MilvusClient

        def _collection(name, schema=None, using="default"):
            return FakeCollection(fake, name, schema)

        self.Collection = _collection


class FakeCollection:
    def __init__(self, fake: FakeMilvus, name: str, schema=None):
        self.fake = fake
        self.name = name
        if schema is not None:
            fake.collections.setdefault(name, {"schema": schema, "rows": [], "indexes": {}, "loaded": False})
            fake.events.append(("create_collection", name))
        elif name not in fake.collections:
            raise RuntimeError(f"collection not found: {name}")

    @property
    def _state(self) -> dict:
        return self.fake.collections[self.name]

    def insert(self, columns):
        ids, years, embeddings = columns
        for i, y, e in zip(ids, years, embeddings):
            self._state["rows"].append({"id": i, "release_year": y, "embedding": list(e)})
        return SimpleNamespace(primary_keys=list(ids))

    def flush(self):
        self.fake.events.append(("flush", self.name))

    @property
    def num_entities(self):
        return len(self._state["rows"])

    def has_index(self, index_name=DEFAULT_INDEX):
        return index_name in self._state["indexes"]

    def index(self, index_name=DEFAULT_INDEX):
        return self._state["indexes"][index_name]

    @property
    def indexes(self):
        return list(self._state["indexes"].values())

    def create_index(self, field_name, index_params, index_name=DEFAULT_INDEX):
        if any(i.field == field_name for i in self._state["indexes"].values()):
            raise RuntimeError("at most one distinct index is allowed per field")
        self._state["indexes"][index_name] = FakeIndex(self.name, field_name, index_params, index_name)
        self.fake.events.append(("create_index", self.name, index_params["index_type"]))

    def drop_index(self, index_name=DEFAULT_INDEX):
        if self._state["loaded"]:
            raise RuntimeError("index cannot be dropped, collection is loaded")
        del self._state["indexes"][index_name]
        self.fake.events.append(("drop_index", self.name, index_name))

    def load(self):
        if not self._state["indexes"]:
            raise RuntimeError("index not found")
        self._state["loaded"] = True

    def release(self):
        self._state["loaded"] = False

    def search(self, data, anns_field, param, limit, expr=None, output_fields=None):
        if not self._state["loaded"]:
            raise RuntimeError("collection not loaded")
        self.fake.searches.append({"data": data, "anns_field": anns_field, "param": param, "limit": limit, "expr": expr})

        rows = self._state["rows"]
        match = re.fullmatch(r"(\w+) in \[(.*)\]", expr or "")
        if match:
            allowed = {int(v) for v in match.group(2).split(",")}
            rows = [r for r in rows if r[match.group(1)] in allowed]

        result = []
        for q in data:
            scored = sorted(
                ((sum((a - b) ** 2 for a, b in zip(q, r[anns_field])), r) for r in rows),
                key=lambda pair: pair[0],
            )[:limit]
            result.append([
                SimpleNamespace(id=r["id"], distance=d, entity={f: r[f] for f in output_fields or []})
                for d, r in scored
            ])
        return result


@pytest.fixture
def fake_milvus(monkeypatch) -> FakeMilvus:
    fake = FakeMilvus()
    monkeypatch.setattr(film_service, "connections", fake.connections)
    monkeypatch.setattr(film_service, "utility", fake.utility)
    monkeypatch.setattr(film_service, "Collection", fake.Collection)
    monkeypatch.setattr(film_service, "MilvusClient", fake.MilvusClient)
    return fake


@pytest.fixture
def settings() -> Settings:
    return Settings(csv_path=str(FILMS_CSV), collection_name="test_films", query_seed=7)
