"""
Tests for the LLM reranker and its degradation paths.
"""

from unittest.mock import Mock

from rag.reranker import build_rerank_prompt, parse_indices, rerank_with_llm
from rag.types import ChunkMetadata, SearchResult

META = ChunkMetadata(source_uri="knowledge://fox/a.md", character_id="fox")


def _results(count):
    return [SearchResult(f"id{i}", f"snippet {i}", 1.0 - i / 10, META) for i in range(count)]


def test_parse_indices_filters_invalid_and_duplicates():
    assert parse_indices("Sure: [2, 0, 9]", 5) == [2, 0]
    assert parse_indices("[1, 1, 3]", 5) == [1, 3]
    assert parse_indices("no array here", 5) == []
    assert parse_indices("", 5) == []


def test_prompt_lists_numbered_snippets():
    results = [SearchResult("a", "x" * 400, 1.0, META)]

    prompt = build_rerank_prompt("useState?", results, 3)

    assert '"useState?"' in prompt
    assert "[0] " + "x" * 150 in prompt
    assert "x" * 151 not in prompt
    assert "3 most relevant" in prompt


def test_rerank_skips_call_when_results_fit():
    quick_call = Mock()
    results = _results(3)

    assert rerank_with_llm("q", results, 3, quick_call) == results
    quick_call.assert_not_called()


def test_rerank_orders_by_reply_and_fills_from_fused_order():
    quick_call = Mock(return_value="Most relevant: [3, 1]")
    results = _results(5)

    reranked = rerank_with_llm("q", results, 3, quick_call)

    assert [r.id for r in reranked] == ["id3", "id1", "id0"]
    quick_call.assert_called_once()


def test_rerank_keeps_fused_order_when_call_fails():
    quick_call = Mock(side_effect=RuntimeError("quota"))

    reranked = rerank_with_llm("q", _results(5), 2, quick_call)

    assert [r.id for r in reranked] == ["id0", "id1"]


def test_rerank_keeps_fused_order_on_unparseable_reply():
    reranked = rerank_with_llm("q", _results(4), 2, Mock(return_value="I think the first one"))

    assert [r.id for r in reranked] == ["id0", "id1"]
