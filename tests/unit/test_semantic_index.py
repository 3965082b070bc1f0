"""Tests for the TF-IDF SemanticIndex."""
from __future__ import annotations

import pytest

from context_weaver.context.semantic_index import SemanticIndex, quick_relevance_score
from context_weaver.session.state import Message


def _msg(message_id: str, content: str) -> Message:
    return Message(id=message_id, role="user", content=content)


@pytest.fixture()
def index() -> SemanticIndex:
    idx = SemanticIndex()
    idx.add(_msg("m1", "Book a hotel in Paris"))
    idx.add(_msg("m2", "My cat likes tuna"))
    return idx


class TestTokenization:
    def test_stop_words_and_short_tokens_ignored(self) -> None:
        idx = SemanticIndex()
        idx.add(_msg("m1", "The quick brown fox is on it!"))
        assert idx.document_frequency("quick") == 1
        assert idx.document_frequency("fox") == 1
        assert idx.document_frequency("the") == 0
        assert idx.document_frequency("is") == 0
        assert idx.document_frequency("it") == 0

    def test_lowercases_and_strips_punctuation(self) -> None:
        idx = SemanticIndex()
        idx.add(_msg("m1", "PARIS, Paris; paris!"))
        assert idx.document_frequency("paris") == 1
        assert idx.stats() == {"documents": 1, "unique_terms": 1}


class TestSearch:
    def test_ranks_matching_document(self, index: SemanticIndex) -> None:
        hits = index.search("paris hotel")
        assert [hit.message.id for hit in hits] == ["m1"]
        assert hits[0].score == pytest.approx(2 / (2**0.5 * 3**0.5))

    def test_stop_word_query_returns_empty(self, index: SemanticIndex) -> None:
        assert index.search("the and of") == []

    def test_empty_index_returns_empty(self) -> None:
        assert SemanticIndex().search("anything") == []

    def test_non_positive_top_k_returns_empty(self, index: SemanticIndex) -> None:
        assert index.search("paris", top_k=0) == []

    def test_ties_keep_insertion_order(self) -> None:
        idx = SemanticIndex()
        idx.add(_msg("first", "flight booking"))
        idx.add(_msg("second", "flight booking"))
        idx.add(_msg("other", "weather report"))
        assert [hit.message.id for hit in idx.search("flight")] == ["first", "second"]

    def test_scores_reflect_current_corpus(self, index: SemanticIndex) -> None:
        before = index.search("paris hotel")[0].score
        index.add(_msg("m3", "Paris museums"))
        after = index.search("paris hotel")[0].score
        assert after != pytest.approx(before)

    def test_top_k_limits_results(self) -> None:
        idx = SemanticIndex()
        for i in range(5):
            idx.add(_msg(f"m{i}", f"travel plans number{i}"))
        assert len(idx.search("travel", top_k=2, min_score=0.0)) == 2


class TestMutation:
    def test_add_then_remove_restores_document_frequency(self, index: SemanticIndex) -> None:
        terms = ["book", "hotel", "paris", "cat", "likes", "tuna"]
        before = {term: index.document_frequency(term) for term in terms}
        results_before = [(h.message.id, h.score) for h in index.search("hotel paris")]

        index.add(_msg("m3", "Another hotel near the cat cafe"))
        assert index.remove("m3") is True

        assert {term: index.document_frequency(term) for term in terms} == before
        assert index.document_frequency("cafe") == 0
        results_after = [(h.message.id, h.score) for h in index.search("hotel paris")]
        assert [r[0] for r in results_after] == [r[0] for r in results_before]
        assert [r[1] for r in results_after] == pytest.approx([r[1] for r in results_before])

    def test_remove_unknown_returns_false(self, index: SemanticIndex) -> None:
        assert index.remove("ghost") is False

    def test_re_adding_an_id_replaces_document(self, index: SemanticIndex) -> None:
        index.add(_msg("m1", "Weather forecast"))
        assert len(index) == 2
        assert index.document_frequency("hotel") == 0
        assert index.document_frequency("weather") == 1

    def test_clear(self, index: SemanticIndex) -> None:
        index.clear()
        assert len(index) == 0
        assert "m1" not in index
        assert index.search("paris") == []


class TestFindRelevant:
    def test_uses_only_given_messages(self, index: SemanticIndex) -> None:
        candidates = [_msg("c1", "tuna sandwich recipe"), _msg("c2", "train timetable")]
        relevant = index.find_relevant("tuna recipe", candidates, top_k=5)
        assert [m.id for m in relevant] == ["c1"]
        assert len(index) == 2
        assert "c1" not in index


class TestQuickRelevanceScore:
    def test_identical_word_sets(self) -> None:
        assert quick_relevance_score("paris hotel", "hotel in Paris!") == pytest.approx(1.0)

    def test_partial_overlap(self) -> None:
        assert quick_relevance_score("paris hotel", "paris museum") == pytest.approx(1 / 3)

    def test_empty_inputs(self) -> None:
        assert quick_relevance_score("", "") == 0.0
