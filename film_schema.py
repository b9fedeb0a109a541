"""
Typed schema for the film collection and a small boolean query builder.

Fields know how to describe themselves to pymilvus and how to build the
predicates that apply to them, so a search is assembled from field objects
instead of hand-written expression strings::

    schema = FilmSchema()
    query = bool_query(must(
        schema.release_year.is_in(1995, 2002),
        schema.embedding.query(vectors).metric_type("L2").top(3).param("nprobe", 8),
    ))
    request = compile_query(query)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pymilvus import CollectionSchema, DataType, FieldSchema

from film_csv import DIMENSION


class QueryError(ValueError):
    pass


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------

class ScalarField:
    def __init__(self, name: str, dtype: DataType, is_primary: bool = False):
        self.name = name
        self.dtype = dtype
        self.is_primary = is_primary

    def to_field_schema(self) -> FieldSchema:
        if self.is_primary:
            return FieldSchema(name=self.name, dtype=self.dtype, is_primary=True, auto_id=False)
        return FieldSchema(name=self.name, dtype=self.dtype)

    def is_in(self, *values: Any) -> "InPredicate":
        if not values:
            raise QueryError(f"'{self.name} in [...]' needs at least one value")
        return InPredicate(self.name, list(values))

    def between(self, low: Any, high: Any) -> "RangePredicate":
        return RangePredicate(self.name, low, high)


class VectorField:
    def __init__(self, name: str, dim: int):
        self.name = name
        self.dim = dim

    def to_field_schema(self) -> FieldSchema:
        return FieldSchema(name=self.name, dtype=DataType.FLOAT_VECTOR, dim=self.dim)

    def query(self, vectors: Sequence[Sequence[float]]) -> "VectorQuery":
        return VectorQuery(self, [list(v) for v in vectors])


class FilmSchema:
    """id (primary, caller supplied), release_year, embedding."""

    def __init__(self, dim: int = DIMENSION):
        self.id = ScalarField("id", DataType.INT64, is_primary=True)
        self.release_year = ScalarField("release_year", DataType.INT32)
        self.embedding = VectorField("embedding", dim)

    def fields(self) -> List[Union[ScalarField, VectorField]]:
        return [self.id, self.release_year, self.embedding]

    def to_collection_schema(self, description: str = "Films with fake embeddings") -> CollectionSchema:
        return CollectionSchema([f.to_field_schema() for f in self.fields()], description=description)


# ---------------------------------------------------------------------------
# Query tree
# ---------------------------------------------------------------------------

def _literal(value: Any) -> str:
    if isinstance(value, str):
        return '"' + value.replace('"', '\\"') + '"'
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class InPredicate:
    field: str
    values: List[Any]

    def to_expr(self) -> str:
        return f"{self.field} in [{', '.join(_literal(v) for v in self.values)}]"


@dataclass
class RangePredicate:
    field: str
    low: Any
    high: Any

    def to_expr(self) -> str:
        return f"({self.field} >= {_literal(self.low)} and {self.field} <= {_literal(self.high)})"


class VectorQuery:
    def __init__(self, field: VectorField, vectors: List[List[float]]):
        self.field = field
        self.vectors = vectors
        self.metric: str = "L2"
        self.limit: Optional[int] = None
        self.params: Dict[str, Any] = {}

    def metric_type(self, metric: str) -> "VectorQuery":
        self.metric = metric.upper()
        return self

    def top(self, k: int) -> "VectorQuery":
        self.limit = k
        return self

    def param(self, key: str, value: Any) -> "VectorQuery":
        self.params[key] = value
        return self


@dataclass
class Must:
    clauses: List[Any]


@dataclass
class Should:
    clauses: List[Any]


@dataclass
class MustNot:
    clause: Any


@dataclass
class BoolQuery:
    root: Any


def must(*clauses) -> Must:
    return Must(list(clauses))


def should(*clauses) -> Should:
    return Should(list(clauses))


def must_not(clause) -> MustNot:
    return MustNot(clause)


def bool_query(clause) -> BoolQuery:
    return BoolQuery(clause)


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------

@dataclass
class SearchRequest:
    """Keyword arguments for ``Collection.search``."""

    data: List[List[float]]
    anns_field: str
    param: Dict[str, Any]
    limit: int
    expr: Optional[str] = None

    def as_kwargs(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "anns_field": self.anns_field,
            "param": self.param,
            "limit": self.limit,
            "expr": self.expr,
        }


def _walk(node, vectors: List[VectorQuery], required: bool) -> Optional[str]:
    """Collect vector queries and return the scalar expression of ``node``."""
    if isinstance(node, VectorQuery):
        if not required:
            raise QueryError("a vector query may only appear under must()")
        vectors.append(node)
        return None
    if isinstance(node, (InPredicate, RangePredicate)):
        return node.to_expr()
    if isinstance(node, BoolQuery):
        return _walk(node.root, vectors, required)
    if isinstance(node, Must):
        parts = [p for p in (_walk(c, vectors, required) for c in node.clauses) if p]
        return _join(parts, "and")
    if isinstance(node, Should):
        parts = [p for p in (_walk(c, vectors, False) for c in node.clauses) if p]
        return _join(parts, "or")
    if isinstance(node, MustNot):
        inner = _walk(node.clause, vectors, False)
        return f"not ({inner})" if inner else None
    raise QueryError(f"unsupported query clause: {node!r}")


def _join(parts: List[str], op: str) -> Optional[str]:
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return "(" + f" {op} ".join(parts) + ")"


def compile_query(query) -> SearchRequest:
    vectors: List[VectorQuery] = []
    expr = _walk(query, vectors, True)

    if len(vectors) != 1:
        raise QueryError(f"expected exactly one vector query, found {len(vectors)}")
    vq = vectors[0]
    if vq.limit is None or vq.limit <= 0:
        raise QueryError("vector query needs a positive top(k)")
    if not vq.vectors:
        raise QueryError("vector query has no query vectors")
    for v in vq.vectors:
        if len(v) != vq.field.dim:
            raise QueryError(f"query vector has dimension {len(v)}, field '{vq.field.name}' expects {vq.field.dim}")

    return SearchRequest(
        data=vq.vectors,
        anns_field=vq.field.name,
        param={"metric_type": vq.metric, "params": dict(vq.params)},
        limit=vq.limit,
        expr=expr,
    )
