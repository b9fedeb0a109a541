"""
Film dataset loader.

`films.csv` has no header and four columns: ``id,title,release_year,embedding``.
The embedding is a bracketed float list embedded in the CSV row, usually
quoted::

    1,Toy Story,1995,"[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8]"

Rows where the list is not quoted are accepted too; the embedding then
starts at the first column beginning with ``[``.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DIMENSION = 8

FilmRow = Tuple[int, str, int, List[float]]


class FilmFormatError(ValueError):
    """A line of the film file does not follow ``id,title,year,[f0, ...]``."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


@dataclass
class FilmRecords:
    """Films grouped by column, in file order."""

    ids: List[int] = field(default_factory=list)
    titles: List[str] = field(default_factory=list)
    release_years: List[int] = field(default_factory=list)
    embeddings: List[List[float]] = field(default_factory=list)

    def append(self, film_id: int, title: str, release_year: int, embedding: List[float]) -> None:
        self.ids.append(film_id)
        self.titles.append(title)
        self.release_years.append(release_year)
        self.embeddings.append(embedding)

    def __len__(self) -> int:
        return len(self.ids)

    def titles_by_id(self) -> Dict[int, str]:
        return dict(zip(self.ids, self.titles))


def parse_embedding(text: str, dim: int = DIMENSION) -> List[float]:
    raw = text.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        raw = raw[1:-1].strip()
    if not (raw.startswith("[") and raw.endswith("]")):
        raise FilmFormatError(f"embedding must be a bracketed list, got {text!r}")

    body = raw[1:-1].strip()
    tokens = [t.strip() for t in body.split(",")] if body else []
    if len(tokens) != dim:
        raise FilmFormatError(f"expected {dim} embedding values, got {len(tokens)}")
    try:
        return [float(t) for t in tokens]
    except ValueError as e:
        raise FilmFormatError(f"bad embedding value in {text!r}") from e


def format_embedding(vector: Iterable[float]) -> str:
    return "[" + ", ".join(repr(float(v)) for v in vector) + "]"


def parse_film_row(line: str, dim: int = DIMENSION) -> FilmRow:
    columns = next(csv.reader([line]), [])

    # The embedding is the first column after id,title,year that opens a list;
    # titles may start with "[" themselves.
    start = next(
        (i for i in range(3, len(columns)) if columns[i].lstrip().startswith("[")),
        None,
    )
    if start is None:
        raise FilmFormatError(f"expected id,title,year,embedding; no embedding list in {line!r}")

    try:
        film_id = int(columns[0])
        release_year = int(columns[start - 1])
    except ValueError as e:
        raise FilmFormatError(f"id and release_year must be integers: {line!r}") from e

    title = ",".join(columns[1:start - 1])
    embedding = parse_embedding(",".join(columns[start:]), dim)
    return film_id, title, release_year, embedding


def read_films(path: str, dim: int = DIMENSION) -> FilmRecords:
    records = FilmRecords()
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            try:
                records.append(*parse_film_row(line, dim))
            except FilmFormatError as e:
                raise FilmFormatError(str(e), line_number) from e

    logger.info("Read %d films from %s", len(records), path)
    return records
