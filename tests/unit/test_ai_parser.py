"""Testes do decode estrito das respostas do gateway de IA."""

from __future__ import annotations

import pytest

from karen_ai.ai.parser import (
    decode_channel_recommendation,
    decode_extraction,
    decode_initial_analysis,
    decode_sufficiency,
    parse_json_object,
)


class TestParseJsonObject:
    def test_plain_object(self) -> None:
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_markdown_fence(self) -> None:
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    @pytest.mark.parametrize("text", [None, "", "hello", "[1, 2]", "{broken"])
    def test_non_objects_return_none(self, text: str | None) -> None:
        assert parse_json_object(text) is None


class TestInitialAnalysis:
    def test_valid_analysis(self) -> None:
        analysis = decode_initial_analysis(
            '{"issue": "Refund request", "service": "Amazon", "keyDetails": {"orderNumber": "123"}}'
        )
        assert analysis is not None
        assert analysis.issue == "Refund request"
        assert analysis.key_details == {"orderNumber": "123"}

    def test_free_text_returns_none(self) -> None:
        assert decode_initial_analysis("I think it is Amazon") is None

    def test_non_mapping_key_details_are_dropped(self) -> None:
        analysis = decode_initial_analysis('{"issue": "x", "service": "y", "keyDetails": "n/a"}')
        assert analysis is not None
        assert analysis.key_details == {}


class TestExtraction:
    def test_flat_facts(self) -> None:
        outcome = decode_extraction('{"orderNumber": "12345", "reason": "damaged"}')
        assert outcome.parsed is True
        assert outcome.facts == {"orderNumber": "12345", "reason": "damaged"}
        assert outcome.has_enough_info is None

    def test_explicit_flag_with_details(self) -> None:
        outcome = decode_extraction(
            '{"hasEnoughInfo": true, "details": {"orderDate": "2024-03-15"}}'
        )
        assert outcome.has_enough_info is True
        assert outcome.facts == {"orderDate": "2024-03-15"}

    def test_flag_inside_details(self) -> None:
        outcome = decode_extraction('{"details": {"hasEnoughInfo": false, "reason": "late"}}')
        assert outcome.has_enough_info is False
        assert outcome.facts == {"reason": "late"}

    def test_true_wins_when_flag_appears_twice(self) -> None:
        outcome = decode_extraction(
            '{"hasEnoughInfo": false, "details": {"hasEnoughInfo": true}}'
        )
        assert outcome.has_enough_info is True

    def test_free_text_becomes_notes(self) -> None:
        outcome = decode_extraction("The user mentioned their order arrived broken.")
        assert outcome.parsed is False
        assert outcome.facts == {}
        assert outcome.notes == "The user mentioned their order arrived broken."


class TestSufficiency:
    def test_json_verdict(self) -> None:
        verdict = decode_sufficiency('{"sufficient": false, "missing": ["orderDate"]}')
        assert verdict.sufficient is False
        assert verdict.missing == ["orderDate"]
        assert verdict.parsed is True

    @pytest.mark.parametrize("text", ["YES", "yes, we have it all", "Yes."])
    def test_yes_prefix(self, text: str) -> None:
        assert decode_sufficiency(text).sufficient is True

    def test_no_keeps_remaining_text(self) -> None:
        verdict = decode_sufficiency("NO, we still need the order date")
        assert verdict.sufficient is False
        assert verdict.parsed is False
        assert verdict.missing == ["NO, we still need the order date"]

    def test_yes_inside_sentence_is_not_enough(self) -> None:
        assert decode_sufficiency("I would say yes").sufficient is False

    def test_empty_reply(self) -> None:
        verdict = decode_sufficiency("")
        assert verdict.sufficient is False
        assert verdict.missing == []


class TestChannelRecommendation:
    def test_search(self) -> None:
        rec = decode_channel_recommendation('{"approach": "search", "searchQuery": "withdrawal"}')
        assert rec is not None
        assert rec.approach == "search"
        assert rec.search_query == "withdrawal"

    def test_missing_approach(self) -> None:
        assert decode_channel_recommendation('{"searchQuery": "x"}') is None

    def test_free_text(self) -> None:
        assert decode_channel_recommendation("use the chat") is None
