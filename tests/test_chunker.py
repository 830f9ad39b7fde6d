"""
Tests for the structure-aware chunker.
"""

from rag.chunker import (
    chunk_sections,
    estimate_tokens,
    extract_overlap,
    split_markdown_into_sections,
    split_with_overlap,
)
from rag.types import ChunkerConfig, DocumentSection, RawMetadata

BASE = RawMetadata("upload://guide.md", "pig", "excel", "user-upload")


def _paragraphs(count):
    return "\n\n".join(" ".join(f"p{i}w{j}" for j in range(8)) for i in range(count))


def test_estimate_tokens_by_script():
    assert estimate_tokens("") == 0
    assert estimate_tokens("hello world") == 4
    # Dense script uses ~2 chars per token
    assert estimate_tokens("안녕하세요") == 3


def test_split_markdown_keeps_heading_with_section():
    text = "intro line\n# Setup\nInstall it.\n## Usage\nRun it."
    sections = split_markdown_into_sections(text)

    assert [s.title for s in sections] == ["untitled", "Setup", "Usage"]
    assert sections[1].content == "# Setup\nInstall it."


def test_split_markdown_heading_only_and_blank_input():
    sections = split_markdown_into_sections("# Empty\n\n# Full\nbody", default_title="doc")
    assert [s.title for s in sections] == ["Empty", "Full"]
    assert split_markdown_into_sections("   \n\n") == []


def test_small_section_is_one_chunk_with_section_metadata():
    sections = [DocumentSection("Sales", "| a | b |", {"sheet": "Sales", "rows": 1})]

    chunks = chunk_sections(sections, BASE)

    assert len(chunks) == 1
    assert chunks[0].content == "| a | b |"
    assert chunks[0].metadata == BASE
    assert chunks[0].extra == {"sheet": "Sales", "rows": 1}


def test_large_section_splits_within_budget_with_overlap():
    sections = [DocumentSection("Guide", _paragraphs(10))]

    chunks = chunk_sections(sections, BASE, ChunkerConfig(max_tokens=50, overlap_tokens=10))

    assert len(chunks) > 1
    for chunk in chunks:
        assert estimate_tokens(chunk.content) <= 50
    for prev, nxt in zip(chunks, chunks[1:]):
        prev_words = prev.content.split()
        next_words = nxt.content.split()
        # The next chunk opens with the tail of the previous one
        assert next_words[0] in prev_words
        assert prev_words[-1] in next_words


def test_overlong_single_word_is_emitted_alone():
    assert split_with_overlap("a" * 400, max_tokens=50, overlap_tokens=10) == ["a" * 400]


def test_blank_sections_produce_no_chunks():
    assert chunk_sections([DocumentSection("x", "  \n ")], BASE) == []


def test_extract_overlap_respects_allowance():
    text = " ".join(f"word{i}" for i in range(40))

    overlap = extract_overlap(text, 10)

    assert overlap
    assert estimate_tokens(overlap) <= 10
    assert text.endswith(overlap)
    assert extract_overlap(text, 0) == ""


def _shared_tail(prev, nxt):
    prev_words, next_words = prev.split(), nxt.split()
    for k in range(min(len(prev_words), len(next_words)), 0, -1):
        if prev_words[-k:] == next_words[:k]:
            return " ".join(next_words[:k])
    return ""


def test_overlap_keeps_full_size_when_paragraphs_fill_the_budget():
    """Paragraphs close to the budget must not squeeze the carried tail."""
    for words_per_paragraph in (25, 27):
        text = "\n\n".join(
            " ".join(f"w{p}x{i}" for i in range(words_per_paragraph)) for p in range(3)
        )

        chunks = split_with_overlap(text, max_tokens=50, overlap_tokens=10)

        assert len(chunks) > 2
        for chunk in chunks:
            assert estimate_tokens(chunk) <= 50
        for prev, nxt in zip(chunks, chunks[1:]):
            shared = _shared_tail(prev, nxt)
            assert 7 <= estimate_tokens(shared) <= 10, (prev, nxt)


def test_every_word_survives_the_split():
    text = "\n\n".join(" ".join(f"w{p}x{i}" for i in range(27)) for p in range(3))

    chunks = split_with_overlap(text, max_tokens=50, overlap_tokens=10)

    seen = {word for chunk in chunks for word in chunk.split()}
    assert seen == set(text.split())
