"""Helpers to translate between domain models and Qdrant transport objects."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, cast

from qdrant_client import models as q

from embed_index.core.constants import (
    K_IMAGE_PATHS,
    K_LABEL,
    K_METADATA,
    K_RECORD_ID,
    K_REPRESENTATIVE_PATH,
    K_SOURCE,
    K_TEXT,
)
from embed_index.core.models import Candidate, EmbeddingRecord
from embed_index.services.point_ids import record_point_id


def record_to_point(record: EmbeddingRecord, column: str) -> q.PointStruct:
    """Convert an embedding record into a Qdrant point with a named vector."""
    payload: dict[str, Any] = {
        K_RECORD_ID: record.id,
        K_LABEL: record.label,
        K_SOURCE: record.source_collection,
        K_REPRESENTATIVE_PATH: record.representative_path,
        K_IMAGE_PATHS: list(record.image_paths),
    }
    if record.text is not None:
        payload[K_TEXT] = record.text
    if record.metadata:
        payload[K_METADATA] = dict(record.metadata)

    return q.PointStruct(
        id=record_point_id(record.id),
        payload=payload,
        vector={column: record.vector.astype("float32").tolist()},
    )


def scored_point_to_candidate(point: q.ScoredPoint) -> Candidate:
    """Convert a cosine-scored Qdrant hit into a Candidate.

    Qdrant reports cosine *similarity*; candidates carry cosine distance (``1 - s``).
    """
    payload = point.payload or {}
    return Candidate(
        id=cast(str | None, payload.get(K_RECORD_ID)) or str(point.id),
        label=cast(str | None, payload.get(K_LABEL)) or "",
        source_collection=cast(str | None, payload.get(K_SOURCE)) or "",
        representative_path=cast(str | None, payload.get(K_REPRESENTATIVE_PATH)),
        distance=1.0 - float(point.score),
        text=cast(str | None, payload.get(K_TEXT)),
        image_paths=_coerce_str_list(payload.get(K_IMAGE_PATHS)),
        payload=dict(payload),
    )


def equality_filter(filter_: Mapping[str, Any] | None) -> q.Filter | None:
    """Build a payload filter requiring every ``key == value`` pair."""
    if not filter_:
        return None
    return q.Filter(
        must=[
            q.FieldCondition(key=key, match=q.MatchValue(value=value))
            for key, value in filter_.items()
        ]
    )


def _coerce_str_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]  # pyright: ignore[reportUnknownVariableType]
    return []
