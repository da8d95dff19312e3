"""
Tests for the Question Bank and topic tracking.

Covers:
- Catalog shape: block sizes, unique ids, one risk question per area
- Lookups and QuestionNotFound
- Persona filtering
- Per-session question resolution for deep-dive and risk-scan
- Topic detection and essential-topic coverage
"""

import pytest

from assessment.exceptions import ExtractionFailure, QuestionNotFound
from assessment.interview.models import Area, Block, InputType, Persona
from assessment.interview.questions import (
    CONTEXT_QUESTIONS,
    QUESTION_BANK,
    Question,
    QuestionBank,
)
from assessment.interview.extractors import text_field
from assessment.interview.topics import detect_topics, topic_coverage


@pytest.fixture
def bank():
    return QuestionBank()


class TestCatalogShape:

    def test_block_sizes(self, bank):
        assert len(bank.get_questions_by_block(Block.CONTEXT)) == 7
        assert len(bank.get_questions_by_block(Block.EXPERTISE)) == 4
        assert len(bank.get_questions_by_block(Block.RISK_SCAN)) == len(Area)

    def test_five_deep_dive_questions_per_area(self, bank):
        for area in Area:
            assert len(bank.get_deep_dive_questions(area)) == 5

    def test_ids_unique(self):
        ids = [q.id for q in QUESTION_BANK]
        assert len(ids) == len(set(ids))

    def test_choice_questions_have_options(self):
        for q in QUESTION_BANK:
            if q.input_type == InputType.SINGLE_CHOICE:
                assert q.options, q.id

    def test_essential_field_is_first(self, bank):
        q = bank.get_question_by_id("ctx-004")
        assert q.essential_field == "company.team_size"

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            QuestionBank(questions=CONTEXT_QUESTIONS + CONTEXT_QUESTIONS[:1])


class TestLookups:

    def test_get_by_id(self, bank):
        assert bank.get_question_by_id("fin-001").area == Area.FINANCE
        assert "fin-001" in bank
        assert "nope" not in bank

    def test_unknown_id(self, bank):
        with pytest.raises(QuestionNotFound) as exc_info:
            bank.get_question_by_id("zzz-999")
        assert exc_info.value.question_id == "zzz-999"

    def test_risk_scan_question(self, bank):
        q = bank.get_risk_scan_question(Area.TECHNOLOGY)
        assert q.id == "risk-technology"
        assert q.options == ("Yes", "No")

    def test_missing_risk_question(self):
        small = QuestionBank(questions=CONTEXT_QUESTIONS)
        with pytest.raises(QuestionNotFound) as exc_info:
            small.get_risk_scan_question(Area.SALES)
        assert exc_info.value.area == "sales"

    def test_missing_deep_dive_questions(self):
        small = QuestionBank(questions=CONTEXT_QUESTIONS)
        with pytest.raises(QuestionNotFound) as exc_info:
            small.get_deep_dive_questions(Area.FINANCE)
        assert exc_info.value.area == "finance"
        assert exc_info.value.block == "deep-dive"

    def test_to_dict_has_no_extractor(self, bank):
        data = bank.get_question_by_id("ctx-003").to_dict()
        assert data["input_type"] == "single-choice"
        assert data["block"] == "context"
        assert "extractor" not in data

    def test_extract_tags_question_id(self, bank):
        with pytest.raises(ExtractionFailure) as exc_info:
            bank.get_question_by_id("ctx-004").extract("a handful")
        assert exc_info.value.question_id == "ctx-004"


class TestPersonaFiltering:

    @pytest.fixture
    def persona_bank(self):
        return QuestionBank(questions=(
            Question(
                id="t-1", block=Block.CONTEXT, text="Everyone?",
                extractor=text_field("a"), fields=("a",),
            ),
            Question(
                id="t-2", block=Block.CONTEXT, text="Tech only?",
                extractor=text_field("b"), fields=("b",),
                applies_to_personas=frozenset({Persona.TECHNICAL}),
            ),
        ))

    def test_restricted_question_hidden(self, persona_bank):
        ids = [q.id for q in persona_bank.get_questions_by_block(Block.CONTEXT, Persona.FOUNDER)]
        assert ids == ["t-1"]

    def test_matching_persona_sees_both(self, persona_bank):
        assert len(persona_bank.get_questions_by_block(Block.CONTEXT, Persona.TECHNICAL)) == 2

    def test_no_persona_sees_everything(self, persona_bank):
        assert len(persona_bank.get_questions_by_block(Block.CONTEXT)) == 2


class TestQuestionsForSession:

    def test_deep_dive_empty_without_area(self, bank):
        assert bank.questions_for_session(Block.DEEP_DIVE) == []

    def test_deep_dive_for_area(self, bank):
        qs = bank.questions_for_session(Block.DEEP_DIVE, deep_dive_area=Area.SALES)
        assert [q.id for q in qs] == [f"sales-00{i}" for i in range(1, 6)]

    def test_risk_scan_follows_selection_order(self, bank):
        qs = bank.questions_for_session(
            Block.RISK_SCAN, risk_areas=[Area.FINANCE, Area.PRODUCT]
        )
        assert [q.id for q in qs] == ["risk-finance", "risk-product"]

    def test_risk_area_without_question_skipped(self):
        small = QuestionBank(questions=CONTEXT_QUESTIONS)
        assert small.questions_for_session(Block.RISK_SCAN, risk_areas=[Area.SALES]) == []

    def test_deep_dive_area_without_questions_skipped(self):
        small = QuestionBank(questions=CONTEXT_QUESTIONS)
        assert small.questions_for_session(Block.DEEP_DIVE, deep_dive_area=Area.SALES) == []


class TestTopics:

    def test_detect_multiple(self):
        topics = detect_topics("Bugs are slowing our releases and hiring is hard")
        assert {"quality", "velocity", "team"} <= topics

    def test_empty(self):
        assert detect_topics("") == set()

    def test_coverage(self):
        result = topic_coverage({"velocity", "quality", "customer"})
        assert result["percentage"] == 40
        assert result["covered"] == ["velocity", "quality"]
        assert result["missing"] == ["cost", "team", "process"]
