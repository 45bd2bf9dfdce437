"""Unit tests for the knowledge-base and retrieval Pydantic models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from kbrag.models.knowledge import (
    ChunkPosition,
    Document,
    DocumentStatus,
    KnowledgeBase,
    Visibility,
    can_transition,
    estimate_token_count,
)
from kbrag.models.rag import IngestionResult, RetrievalOptions


# ======================================================================
# Status machine
# ======================================================================


class TestCanTransition:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (DocumentStatus.UPLOADING, DocumentStatus.PROCESSING),
            (DocumentStatus.UPLOADING, DocumentStatus.FAILED),
            (DocumentStatus.PROCESSING, DocumentStatus.READY),
            (DocumentStatus.PROCESSING, DocumentStatus.FAILED),
            (DocumentStatus.FAILED, DocumentStatus.PROCESSING),
        ],
    )
    def test_allowed(self, current: DocumentStatus, target: DocumentStatus) -> None:
        assert can_transition(current, target) is True

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (DocumentStatus.UPLOADING, DocumentStatus.READY),
            (DocumentStatus.READY, DocumentStatus.PROCESSING),
            (DocumentStatus.READY, DocumentStatus.FAILED),
            (DocumentStatus.FAILED, DocumentStatus.READY),
            (DocumentStatus.PROCESSING, DocumentStatus.UPLOADING),
            (DocumentStatus.PROCESSING, DocumentStatus.PROCESSING),
        ],
    )
    def test_forbidden(self, current: DocumentStatus, target: DocumentStatus) -> None:
        assert can_transition(current, target) is False


# ======================================================================
# Models
# ======================================================================


class TestKnowledgeBase:
    def test_defaults(self) -> None:
        kb = KnowledgeBase(id="kb-1", owner_id="owner-1", name="Handbook")
        assert kb.visibility == Visibility.PRIVATE
        assert kb.description is None
        assert kb.created_at.tzinfo is not None

    def test_name_length_bounds(self) -> None:
        with pytest.raises(ValidationError):
            KnowledgeBase(id="kb-1", owner_id="o", name="")
        with pytest.raises(ValidationError):
            KnowledgeBase(id="kb-1", owner_id="o", name="x" * 101)

    def test_frozen(self) -> None:
        kb = KnowledgeBase(id="kb-1", owner_id="o", name="Handbook")
        with pytest.raises(ValidationError):
            kb.name = "Other"  # type: ignore[misc]


class TestDocument:
    def _doc(self, status: DocumentStatus) -> Document:
        return Document(
            id="d1",
            knowledge_base_id="kb-1",
            file_name="a.txt",
            original_name="a.txt",
            mime_type="text/plain",
            file_size=10,
            status=status,
        )

    def test_is_terminal(self) -> None:
        assert self._doc(DocumentStatus.READY).is_terminal
        assert self._doc(DocumentStatus.FAILED).is_terminal
        assert not self._doc(DocumentStatus.UPLOADING).is_terminal
        assert not self._doc(DocumentStatus.PROCESSING).is_terminal

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Document(
                id="d1",
                knowledge_base_id="kb-1",
                file_name="a.txt",
                original_name="a.txt",
                mime_type="text/plain",
                file_size=-1,
            )


class TestChunkPosition:
    def test_end_before_start_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ChunkPosition(start_index=10, end_index=5)

    def test_page_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ChunkPosition(start_index=0, end_index=1, page=0)

    def test_json_round_trip(self) -> None:
        position = ChunkPosition(start_index=3, end_index=9, page=2, section="Intro")
        assert ChunkPosition.model_validate_json(position.model_dump_json()) == position


class TestEstimateTokenCount:
    @pytest.mark.parametrize(("text", "expected"), [("", 0), ("abc", 1), ("abcd", 1), ("abcde", 2)])
    def test_ceil_of_quarter_length(self, text: str, expected: int) -> None:
        assert estimate_token_count(text) == expected


class TestRetrievalOptions:
    def test_defaults(self) -> None:
        options = RetrievalOptions(query="vacation")
        assert options.top_k == 10
        assert options.min_score == 0.7
        assert options.max_tokens == 4000
        assert options.diversity_threshold == 0.85

    @pytest.mark.parametrize(
        "overrides",
        [{"top_k": 0}, {"top_k": 51}, {"min_score": -0.1}, {"max_tokens": 0}, {"query": ""}],
    )
    def test_out_of_range(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            RetrievalOptions(**{"query": "q", **overrides})


class TestIngestionResult:
    def test_defaults(self) -> None:
        result = IngestionResult(document_id="d1", status="ready")
        assert result.chunks_created == 0
        assert result.error_message is None
