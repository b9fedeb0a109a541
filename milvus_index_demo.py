"""
Build and search a vector index in Milvus.

The dataset is `films.csv`: id, title, release_year and an 8-d embedding per
film (titles come from MovieLens, ids and embeddings are fake). Titles stay
on the client; only ids, years and embeddings go into the collection.

Usage:
    python milvus_index_demo.py --csv films.csv --host localhost --port 19530
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

import numpy as np
from pydantic import ValidationError

from film_csv import format_embedding, read_films
from film_results import FilmHit, hits_from_search
from film_schema import bool_query, must
from film_service import FilmService
from film_settings import Settings

logger = logging.getLogger(__name__)

OUTPUT_FIELDS = ["release_year", "embedding"]
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def random_float_vectors(count: int, dim: int, seed: Optional[int] = None) -> List[List[float]]:
    rng = np.random.default_rng(seed)
    return rng.random((count, dim), dtype=np.float32).tolist()


def print_hits(results: List[List[FilmHit]]) -> None:
    print("\n--------Search Result--------")
    print("- ids:", [[h.id for h in hits] for hits in results])
    print("- distances:", [[h.distance for h in hits] for hits in results])
    for hits in results:
        for hit in hits:
            print("==")
            print(f"- title: {hit.title}")
            print(f"- release_year: {hit.fields.get('release_year')}")
            embedding = hit.fields.get("embedding")
            print(f"- embedding: {format_embedding(embedding) if embedding is not None else None}")


def run(settings: Settings) -> List[List[FilmHit]]:
    films = read_films(settings.csv_path, settings.dimension)
    titles = films.titles_by_id()

    # 1) Connect; the connection is closed on every exit path
    with FilmService(settings) as service:
        schema = service.schema

        # 2) Recreate collection cleanly
        service.recreate_collection()

        # 3) Insert, flush, count
        service.insert(films)
        service.flush()
        count = service.count_entities()
        print(f"There are {count} films in the collection.")
        if count < settings.segment_row_limit:
            logger.warning(
                "%d rows is below segment_row_limit=%d, the index may only cover sealed segments",
                count, settings.segment_row_limit,
            )

        # 4) Build index (creating a different one replaces the old)
        service.create_index(
            schema.embedding,
            settings.index_type,
            settings.metric_type,
            {"nlist": settings.nlist},
        )

        print("\n--------Collection Stats--------")
        print(json.dumps(service.collection_stats(), indent=4, default=str))

        # 5) Load and search: year filter AND top-k on the embedding
        service.load()
        query = bool_query(must(
            schema.release_year.is_in(*settings.release_years),
            schema.embedding.query(random_float_vectors(1, settings.dimension, settings.query_seed))
            .metric_type(settings.metric_type)
            .top(settings.top_k)
            .param("nprobe", settings.nprobe),
        ))
        result = service.search(query, output_fields=OUTPUT_FIELDS)
        hits = hits_from_search(result, titles, OUTPUT_FIELDS)
        print_hits(hits)

        # 6) Housekeeping
        service.drop_index(schema.embedding)
        service.drop_collection()

    return hits


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build and search an IVF index over films in Milvus.")
    parser.add_argument("--csv", dest="csv_path", help="Path to films.csv")
    parser.add_argument("--host", dest="milvus_host", help="Milvus host")
    parser.add_argument("--port", dest="milvus_port", type=int, help="Milvus port")
    parser.add_argument("--collection", dest="collection_name", help="Collection name")
    parser.add_argument("--top-k", dest="top_k", type=int, help="Number of neighbours to return")
    parser.add_argument("--seed", dest="query_seed", type=int, help="Seed for the random query vector")
    parser.add_argument("--log-level", dest="log_level", help="Logging level")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if v is not None}
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        logging.basicConfig(format=LOG_FORMAT)
        logger.error("Invalid settings: %s", e)
        return 1

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    try:
        run(settings)
    except Exception:
        logger.exception("Demo failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
