"""Domain models shared by the indexing and retrieval pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np


@dataclass(frozen=True)
class ImageRef:
    """Reference to an image on disk or behind a URL (exactly one of the two)."""

    path: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.url is None):
            raise ValueError("ImageRef requires exactly one of path or url")


@dataclass(frozen=True)
class TextRef:
    """A short text span to embed."""

    text: str


EmbeddingInput = ImageRef | TextRef


@dataclass(frozen=True)
class WorkItem:
    """One unit of indexing work, identified by a stable, order-independent id."""

    id: str
    source: str
    label: str
    inputs: tuple[EmbeddingInput, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def representative_path(self) -> str | None:
        for ref in self.inputs:
            if isinstance(ref, ImageRef):
                return ref.path or ref.url
        return None

    @property
    def text(self) -> str | None:
        for ref in self.inputs:
            if isinstance(ref, TextRef):
                return ref.text
        return None

    @property
    def image_paths(self) -> list[str]:
        return [ref.path or ref.url or "" for ref in self.inputs if isinstance(ref, ImageRef)]


@dataclass(frozen=True)
class EmbeddingRecord:
    """A stored vector with the metadata needed to rerank and display it."""

    id: str
    label: str
    source_collection: str
    representative_path: str | None
    vector: np.ndarray = field(compare=False, repr=False)
    text: str | None = None
    image_paths: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def dim(self) -> int:
        return int(self.vector.shape[0])


@dataclass(frozen=True)
class Candidate:
    """ANN hit: record fields plus the index's native distance (cosine distance)."""

    id: str
    label: str
    source_collection: str
    representative_path: str | None
    distance: float
    text: str | None = None
    image_paths: list[str] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def representative(self) -> EmbeddingInput | None:
        """Input used to compute the candidate's fine embedding."""
        if self.representative_path:
            if self.representative_path.startswith(("http://", "https://", "gs://")):
                return ImageRef(url=self.representative_path)
            return ImageRef(path=self.representative_path)
        if self.text:
            return TextRef(text=self.text)
        return None


@dataclass(frozen=True)
class RankedCandidate:
    """Candidate with its rerank score (cosine similarity of fine embeddings)."""

    candidate: Candidate
    rerank_score: float

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def distance(self) -> float:
        return self.candidate.distance


@dataclass
class BatchResult:
    """Counters for a single indexing run."""

    total: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    already_done: int = 0
    cancelled: bool = False

    @property
    def accounted(self) -> int:
        """Items that reached a final outcome in this run."""
        return self.processed + self.skipped + self.failed + self.already_done

    @property
    def pending(self) -> int:
        """Items that were not already done when the run started."""
        return self.total - self.already_done

    @property
    def exit_code(self) -> int:
        """0 on success or nothing to do, 1 if pending work existed but none succeeded, 130 if cancelled."""
        if self.cancelled:
            return 130
        if self.pending > 0 and self.processed == 0:
            return 1
        return 0

    def summary(self) -> str:
        return (
            f"processed={self.processed} skipped={self.skipped} failed={self.failed} "
            f"already_done={self.already_done} total={self.total}"
        )
