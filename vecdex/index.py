"""In-memory embedding index with exhaustive cosine-similarity search."""

import logging
import math
import numbers
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np

from vecdex.config import Config, get_config
from vecdex.db import Database
from vecdex.errors import InvalidEmbeddingError, NotFoundError, SchemaMismatchError
from vecdex.persistence import load_index, save_index
from vecdex.similarity import cosine_similarity

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass(frozen=True)
class RecordSchema:
    """The set of field names every record in an index must carry."""

    fields: frozenset[str]

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RecordSchema":
        return cls(frozenset(record.keys()))

    def validate(self, record: Mapping[str, Any]) -> None:
        """Raise SchemaMismatchError if the record lacks any schema field.

        Fields beyond the schema are allowed.
        """
        missing = sorted(self.fields - record.keys())
        if missing:
            raise SchemaMismatchError(
                f"Record is missing fields required by the index: {', '.join(missing)}",
                missing=missing,
            )


@dataclass(frozen=True)
class SimilarityResult:
    """A single search hit."""

    similarity: float
    record: Record


def _validate_vector(embedding) -> None:
    if isinstance(embedding, np.ndarray):
        if embedding.ndim != 1 or not np.issubdtype(embedding.dtype, np.number):
            raise InvalidEmbeddingError("embedding must be a 1-D numeric array")
        values = embedding.tolist()
    elif isinstance(embedding, (list, tuple)):
        values = embedding
    else:
        raise InvalidEmbeddingError("embedding must be a sequence of numbers, got "
                                    f"{type(embedding).__name__}")

    for value in values:
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InvalidEmbeddingError(f"embedding contains a non-numeric value: {value!r}")
        if not math.isfinite(value):
            raise InvalidEmbeddingError(f"embedding contains a non-finite value: {value!r}")


def _validate_embedding(record: Mapping[str, Any]) -> None:
    _validate_vector(record.get("embedding"))


def _matches(record: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filter.items())


class EmbeddingIndex:
    """Ordered collection of records searchable by embedding similarity.

    Records keep insertion order. The first record added fixes the schema
    (its field names) unless one is passed explicitly; every later record
    must carry at least those fields.
    """

    def __init__(
        self,
        initial_records: Iterable[Mapping[str, Any]] | None = None,
        schema: RecordSchema | None = None,
        config: Config | None = None,
        db: Database | None = None,
    ):
        self.config = config or get_config()
        self._records: list[Record] = []
        self._schema = schema
        self._schema_fixed = schema is not None
        self._db = db
        for record in initial_records or []:
            self.add(record)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[Record]:
        """Snapshot of the records in insertion order."""
        return list(self._records)

    @property
    def schema(self) -> RecordSchema | None:
        return self._schema

    @property
    def db(self) -> Database:
        """Get or create the store used for persistence."""
        if self._db is None:
            self._db = Database(self.config)
        return self._db

    def _validate(self, record: Mapping[str, Any]) -> Record:
        _validate_embedding(record)
        if self._schema is not None:
            self._schema.validate(record)
        return dict(record)

    def _find(self, filter: Mapping[str, Any]) -> int:
        for position, record in enumerate(self._records):
            if _matches(record, filter):
                return position
        return -1

    # --- Mutation ---

    def add(self, record: Mapping[str, Any]) -> None:
        """Validate and append a record."""
        validated = self._validate(record)
        if self._schema is None:
            self._schema = RecordSchema.from_record(validated)
            logger.debug("Schema established: %s", sorted(self._schema.fields))
        self._records.append(validated)

    def update(self, filter: Mapping[str, Any], record: Mapping[str, Any]) -> None:
        """Replace the first record matching ``filter``, keeping its position."""
        position = self._find(filter)
        if position == -1:
            raise NotFoundError(f"No record matches filter {dict(filter)!r}", filter=dict(filter))
        self._records[position] = self._validate(record)

    def remove(self, filter: Mapping[str, Any]) -> None:
        """Remove the first record matching ``filter``."""
        position = self._find(filter)
        if position == -1:
            raise NotFoundError(f"No record matches filter {dict(filter)!r}", filter=dict(filter))
        del self._records[position]

    def remove_batch(self, filters: Iterable[Mapping[str, Any]]) -> int:
        """Remove the first match for each filter.

        Filters with no match are skipped rather than raising.

        Returns:
            Number of records removed.
        """
        removed = 0
        for filter in filters:
            position = self._find(filter)
            if position != -1:
                del self._records[position]
                removed += 1
        return removed

    def clear(self) -> None:
        """Drop all records. A schema derived from records is forgotten too."""
        self._records = []
        if not self._schema_fixed:
            self._schema = None

    # --- Queries ---

    def get(self, filter: Mapping[str, Any]) -> Record | None:
        """Return the first record matching ``filter``, or None."""
        position = self._find(filter)
        if position == -1:
            return None
        return self._records[position]

    def search(
        self,
        query_embedding,
        top_k: int | None = None,
        filter: Mapping[str, Any] | None = None,
        precision: int | None = None,
    ) -> list[SimilarityResult]:
        """Rank records by cosine similarity to the query.

        Args:
            query_embedding: Query vector, same length as the stored embeddings.
            top_k: Maximum number of results. Defaults to config.top_k.
            filter: Exact field-value pairs a record must match to be ranked.
            precision: Decimal digits kept in the similarity scores.

        Returns:
            List of SimilarityResult ordered by descending similarity. Equal
            scores keep insertion order.

        Raises:
            InvalidEmbeddingError: If the query is not a sequence of finite numbers.
        """
        _validate_vector(query_embedding)
        top_k = self.config.top_k if top_k is None else top_k
        if top_k < 0:
            raise ValueError(f"top_k must be non-negative, got {top_k}")
        precision = self.config.similarity_precision if precision is None else precision
        filter = filter or {}

        results = [
            SimilarityResult(
                similarity=cosine_similarity(query_embedding, record["embedding"], precision),
                record=record,
            )
            for record in self._records
            if _matches(record, filter)
        ]
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:top_k]

    def print_index(self) -> None:
        """Print every record, for debugging."""
        print("Index Content:")
        for number, record in enumerate(self._records, start=1):
            print(f"Item {number}: {record}")

    # --- Persistence ---

    async def save_index_to_db(
        self, db_name: str | None = None, collection_name: str | None = None
    ) -> None:
        """Persist every record into a collection of the named store."""
        await save_index(
            self,
            self.db,
            db_name or self.config.default_db,
            collection_name or self.config.default_collection,
        )

    async def load_index_from_db(
        self, collection_name: str | None = None, db_name: str | None = None
    ) -> int:
        """Replace the records with the contents of a stored collection.

        Args:
            collection_name: Collection to read.
            db_name: Store to open first. Required when this index has not
                saved to or loaded from a store yet.

        Returns:
            Number of records loaded.
        """
        return await load_index(
            self,
            self.db,
            collection_name or self.config.default_collection,
            db_name=db_name,
        )
