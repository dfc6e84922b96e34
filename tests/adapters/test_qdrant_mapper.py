"""Tests for Qdrant mapping helpers."""

from __future__ import annotations

import numpy as np
import pytest
from qdrant_client import models as q

from embed_index.adapters.qdrant_mapper import equality_filter, record_to_point, scored_point_to_candidate
from embed_index.core.models import EmbeddingRecord, ImageRef, TextRef
from embed_index.services.point_ids import record_point_id


def test_record_to_point_payload_and_vector() -> None:
    record = EmbeddingRecord(
        id="foodseg103-00001.jpg",
        label="apple",
        source_collection="foodseg103",
        representative_path="/data/apple/00001.jpg",
        vector=np.array([0.25, 0.5], dtype=np.float64),
        image_paths=["/data/apple/00001.jpg"],
    )

    point = record_to_point(record, "emb_coarse")

    assert point.id == record_point_id("foodseg103-00001.jpg")
    assert point.vector == {"emb_coarse": [0.25, 0.5]}
    assert point.payload == {
        "record_id": "foodseg103-00001.jpg",
        "label": "apple",
        "source": "foodseg103",
        "representative_path": "/data/apple/00001.jpg",
        "image_paths": ["/data/apple/00001.jpg"],
    }


def test_record_to_point_includes_text_when_present() -> None:
    record = EmbeddingRecord(
        id="r",
        label="l",
        source_collection="s",
        representative_path=None,
        vector=np.zeros(2, dtype=np.float32),
        text="hello",
    )
    assert record_to_point(record, "c").payload["text"] == "hello"  # pyright: ignore[reportOptionalSubscript]


def test_record_to_point_stores_metadata_when_present() -> None:
    record = EmbeddingRecord(
        id="r",
        label="l",
        source_collection="s",
        representative_path=None,
        vector=np.zeros(2, dtype=np.float32),
        metadata={"cuisine": "greek"},
    )
    payload = record_to_point(record, "c").payload or {}
    assert payload["metadata"] == {"cuisine": "greek"}


def test_scored_point_to_candidate_converts_score_to_distance() -> None:
    point = q.ScoredPoint(
        id="00000000-0000-0000-0000-000000000001",
        version=0,
        score=0.75,
        payload={
            "record_id": "foodseg103-00001.jpg",
            "label": "apple",
            "source": "foodseg103",
            "representative_path": "https://cdn.example.com/a.jpg",
            "image_paths": ["https://cdn.example.com/a.jpg", None],
        },
    )

    candidate = scored_point_to_candidate(point)

    assert candidate.id == "foodseg103-00001.jpg"
    assert candidate.distance == pytest.approx(0.25)
    assert candidate.image_paths == ["https://cdn.example.com/a.jpg"]
    assert candidate.representative == ImageRef(url="https://cdn.example.com/a.jpg")


def test_scored_point_without_payload_falls_back_to_point_id() -> None:
    point = q.ScoredPoint(id=7, version=0, score=1.0, payload={"text": "only text"})

    candidate = scored_point_to_candidate(point)

    assert candidate.id == "7"
    assert candidate.label == ""
    assert candidate.representative == TextRef(text="only text")


def test_equality_filter() -> None:
    assert equality_filter(None) is None
    assert equality_filter({}) is None

    flt = equality_filter({"source": "recipes", "label": "soup"})

    assert flt is not None
    conditions = flt.must
    assert isinstance(conditions, list)
    assert [(c.key, c.match.value) for c in conditions] == [  # pyright: ignore[reportAttributeAccessIssue]
        ("source", "recipes"),
        ("label", "soup"),
    ]
