from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class FilmHit:
    id: int
    distance: float
    title: Optional[str]
    fields: Dict[str, Any] = field(default_factory=dict)


def correlate_hits(
    ids: Sequence[int],
    distances: Sequence[float],
    fields: Sequence[Mapping[str, Any]],
    titles_by_id: Mapping[int, str],
) -> List[FilmHit]:
    """Join one query's hits back to the titles kept on the client side.

    Titles are looked up by film id; the position of a hit in the result
    says nothing about where the film was in the input file.
    """
    if not (len(ids) == len(distances) == len(fields)):
        raise ValueError(
            f"result columns differ in length: {len(ids)} ids, "
            f"{len(distances)} distances, {len(fields)} field maps"
        )

    hits = []
    for film_id, distance, values in zip(ids, distances, fields):
        title = titles_by_id.get(film_id)
        if title is None:
            logger.warning("No title known for film id %s", film_id)
        hits.append(FilmHit(id=film_id, distance=distance, title=title, fields=dict(values)))
    return hits


def hits_from_search(
    result: Iterable[Iterable[Any]],
    titles_by_id: Mapping[int, str],
    output_fields: Sequence[str],
) -> List[List[FilmHit]]:
    """One list of FilmHit per query vector of a pymilvus search result."""
    per_query = []
    for hits in result:
        hits = list(hits)
        per_query.append(correlate_hits(
            [h.id for h in hits],
            [h.distance for h in hits],
            [{name: h.entity.get(name) for name in output_fields} for h in hits],
            titles_by_id,
        ))
    return per_query
