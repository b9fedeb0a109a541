"""
Film collection lifecycle on top of pymilvus.

``FilmService`` bundles the connection alias, the collection name and the
film schema so the demo script reads as a sequence of steps:

    absent -> created -> populated -> indexed -> queried -> dropped
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pymilvus import Collection, MilvusClient, connections, utility

from film_csv import FilmRecords
from film_schema import FilmSchema, VectorField, compile_query
from film_settings import Settings

logger = logging.getLogger(__name__)


class FilmService:
    def __init__(self, settings: Settings, schema: Optional[FilmSchema] = None):
        self.settings = settings
        self.schema = schema or FilmSchema(settings.dimension)
        self.alias = settings.connection_alias
        self.collection_name = settings.collection_name
        self._collection: Optional[Collection] = None

    # ------------ connection ------------
    def connect(self) -> None:
        kwargs: Dict[str, Any] = {"host": self.settings.milvus_host, "port": str(self.settings.milvus_port)}
        if self.settings.milvus_token:
            kwargs["token"] = self.settings.milvus_token
        connections.connect(self.alias, **kwargs)
        logger.info("Connected to Milvus at %s:%s", self.settings.milvus_host, self.settings.milvus_port)

    def close(self) -> None:
        connections.disconnect(self.alias)
        self._collection = None
        logger.info("Disconnected from Milvus")

    def __enter__(self) -> "FilmService":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def collection(self) -> Collection:
        if self._collection is None:
            self._collection = Collection(self.collection_name, using=self.alias)
        return self._collection

    # ------------ collections ------------
    def list_collections(self) -> List[str]:
        return utility.list_collections(using=self.alias)

    def has_collection(self) -> bool:
        return utility.has_collection(self.collection_name, using=self.alias)

    def recreate_collection(self) -> Collection:
        if self.has_collection():
            logger.info("Collection '%s' already exists, dropping it", self.collection_name)
            utility.drop_collection(self.collection_name, using=self.alias)

        self._collection = Collection(
            name=self.collection_name,
            schema=self.schema.to_collection_schema(),
            using=self.alias,
        )
        logger.info("Created collection '%s'", self.collection_name)
        return self._collection

    def drop_collection(self) -> None:
        if self.has_collection():
            utility.drop_collection(self.collection_name, using=self.alias)
            logger.info("Dropped collection '%s'", self.collection_name)
        self._collection = None

    # ------------ data ------------
    def insert(self, records: FilmRecords) -> List[int]:
        # Column order must match the schema: id, release_year, embedding.
        result = self.collection.insert([records.ids, records.release_years, records.embeddings])
        logger.info("Inserted %d films", len(records))
        return list(result.primary_keys)

    def flush(self) -> None:
        self.collection.flush()

    def count_entities(self) -> int:
        return self.collection.num_entities

    def collection_stats(self) -> Dict[str, Any]:
        client = MilvusClient(uri=self.settings.milvus_uri, token=self.settings.milvus_token or "")
        try:
            stats = dict(client.get_collection_stats(collection_name=self.collection_name))
        finally:
            client.close()
        stats["indexes"] = [index.to_dict() for index in self.collection.indexes]
        return stats

    # ------------ index ------------
    @staticmethod
    def index_name(field: VectorField) -> str:
        return f"{field.name}_idx"

    def create_index(self, field: VectorField, index_type: str, metric_type: str, params: Dict[str, Any]) -> None:
        index_params = {"index_type": index_type, "metric_type": metric_type, "params": dict(params)}
        index_name = self.index_name(field)
        collection = self.collection

        # One index per field: a different one replaces the current index.
        if collection.has_index(index_name=index_name):
            if collection.index(index_name=index_name).params == index_params:
                logger.info("Index on '%s' already matches %s", field.name, index_params)
                return
            logger.info("Replacing existing index on '%s'", field.name)
            collection.release()
            collection.drop_index(index_name=index_name)

        collection.create_index(field_name=field.name, index_params=index_params, index_name=index_name)
        logger.info("Created %s/%s index on '%s' with %s", index_type, metric_type, field.name, params)

    def drop_index(self, field: VectorField) -> None:
        index_name = self.index_name(field)
        collection = self.collection
        if not collection.has_index(index_name=index_name):
            return
        collection.release()
        collection.drop_index(index_name=index_name)
        logger.info("Dropped index on '%s'", field.name)

    # ------------ search ------------
    def load(self) -> None:
        self.collection.load()

    def release(self) -> None:
        self.collection.release()

    def search(self, query, output_fields: Optional[List[str]] = None):
        request = compile_query(query)
        logger.debug("Search on '%s' expr=%s param=%s", request.anns_field, request.expr, request.param)
        return self.collection.search(output_fields=output_fields, **request.as_kwargs())
