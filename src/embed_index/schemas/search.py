"""Search request and response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from embed_index.core.models import Candidate, EmbeddingInput, ImageRef, RankedCandidate, TextRef


class SearchRequest(BaseModel):
    """Request model for search endpoint. Exactly one query field must be set."""

    text: str | None = Field(None, description="Text query", min_length=1)
    image_path: str | None = Field(None, description="Path of a query image, relative to SEARCH_IMAGE_ROOT")
    image_url: str | None = Field(None, description="URL of a query image")
    top_k: int = Field(50, description="Number of coarse ANN candidates", ge=1, le=500)
    top_n: int = Field(10, description="Number of reranked results to return", ge=1, le=100)
    source: str | None = Field(None, description="Optional source collection filter")
    rerank: bool = Field(True, description="Rerank candidates with the fine embedding")

    @model_validator(mode="after")
    def _exactly_one_query(self) -> SearchRequest:
        provided = [v for v in (self.text, self.image_path, self.image_url) if v is not None]
        if len(provided) != 1:
            raise ValueError("Provide exactly one of text, image_path or image_url")
        return self

    def to_input(self) -> EmbeddingInput:
        if self.text is not None:
            return TextRef(text=self.text)
        if self.image_path is not None:
            return ImageRef(path=self.image_path)
        return ImageRef(url=self.image_url)


class CandidateItem(BaseModel):
    """A retrieved (and possibly reranked) record."""

    id: str = Field(..., description="Record ID")
    label: str = Field(..., description="Record label")
    source: str = Field(..., description="Source collection")
    representative_path: str | None = Field(None, description="Image used to represent the record")
    text: str | None = Field(None, description="Stored text, for text records")
    image_paths: list[str] = Field(default_factory=list, description="All image paths of the record")
    distance: float = Field(..., description="Cosine distance from the coarse ANN search")
    rerank_score: float | None = Field(None, description="Cosine similarity of fine embeddings")

    @classmethod
    def from_candidate(cls, candidate: Candidate, rerank_score: float | None = None) -> CandidateItem:
        return cls(
            id=candidate.id,
            label=candidate.label,
            source=candidate.source_collection,
            representative_path=candidate.representative_path,
            text=candidate.text,
            image_paths=list(candidate.image_paths),
            distance=candidate.distance,
            rerank_score=rerank_score,
        )

    @classmethod
    def from_ranked(cls, ranked: RankedCandidate) -> CandidateItem:
        return cls.from_candidate(ranked.candidate, ranked.rerank_score)

    def to_candidate(self) -> Candidate:
        return Candidate(
            id=self.id,
            label=self.label,
            source_collection=self.source,
            representative_path=self.representative_path,
            distance=self.distance,
            text=self.text,
            image_paths=list(self.image_paths),
        )


class SearchResponse(BaseModel):
    """Response model for search endpoint."""

    results: list[CandidateItem] = Field(..., description="Results, best first")
    total_results: int = Field(..., description="Number of results returned")
    reranked: bool = Field(..., description="Whether results were reranked")
