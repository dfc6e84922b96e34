"""Tests for the coarse retriever."""

from __future__ import annotations

import numpy as np
import pytest

from embed_index.core.models import ImageRef
from embed_index.services.retriever import Retriever
from tests.fakes import FakeEmbeddingClient, FakeVectorIndex, make_candidate, make_embedder

pytestmark = pytest.mark.asyncio


async def test_retrieve_passes_column_k_and_filter() -> None:
    index = FakeVectorIndex()
    index.search_results = [make_candidate("a", 0.1), make_candidate("b", 0.3)]
    retriever = Retriever(index, column="emb_coarse")
    query = np.ones(4, dtype=np.float32)

    candidates = await retriever.retrieve(query, 5, {"source": "foods"})

    assert [c.id for c in candidates] == ["a", "b"]
    column, vector, k, filter_ = index.searches[0]
    assert (column, k, filter_) == ("emb_coarse", 5, {"source": "foods"})
    np.testing.assert_array_equal(vector, query)


async def test_retrieve_for_embeds_with_coarse_model() -> None:
    client = FakeEmbeddingClient(coarse={"/q.jpg": [1, 0, 0, 0]})
    index = FakeVectorIndex()
    retriever = Retriever(index, column="emb_coarse", embedder=make_embedder(client))

    await retriever.retrieve_for(ImageRef(path="/q.jpg"), 3)

    assert client.calls == [("coarse", "/q.jpg")]
    np.testing.assert_array_equal(index.searches[0][1], [1, 0, 0, 0])


async def test_retrieve_for_requires_embedder() -> None:
    with pytest.raises(ValueError):
        await Retriever(FakeVectorIndex(), column="c").retrieve_for(ImageRef(path="/q.jpg"), 3)
