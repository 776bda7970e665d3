"""AI extraction port: prompt building, response parsing, retry policy."""

import json
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError

from conftest import analysis_payload
from procurement.exceptions import AnalysisFailed
from procurement.services.ai_analyzer import (
    ProposalAnalyzer, format_rfp_summary, parse_analysis, summarize_rfp,
)
from procurement.schemas.analysis import RFPItemSummary, RFPSummary


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=reply))],
            usage=SimpleNamespace(total_tokens=321),
        )


def fake_client(*replies):
    completions = FakeCompletions(replies)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


@pytest.fixture
def summary():
    return RFPSummary(
        title="Office Chairs Procurement",
        description="Chairs for the new floor",
        budget=15000.0,
        items=[RFPItemSummary(name="Ergonomic chair", quantity=20, specifications={"color": "black"})],
    )


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(ProposalAnalyzer._call_model.retry, "sleep", lambda seconds: None)


class TestParseAnalysis:

    def test_plain_json(self):
        analysis = parse_analysis(json.dumps(analysis_payload(score=72)))
        assert analysis.score == 72
        assert analysis.proposed_price == 12500.0
        assert analysis.delivery_days == 14
        assert analysis.item_pricing[0].name == "Ergonomic chair"

    def test_json_inside_markdown_fence(self):
        content = "Here is the analysis:\n```json\n" + json.dumps(analysis_payload()) + "\n```\nThanks"
        assert parse_analysis(content).recommendation == "Solid offer."

    def test_item_name_alias(self):
        payload = analysis_payload(itemPricing=[{"itemName": "Desk", "price": 300}])
        assert parse_analysis(json.dumps(payload)).item_pricing[0].name == "Desk"

    def test_missing_optional_fields_default(self):
        analysis = parse_analysis('{"score": 50}')
        assert analysis.proposed_price is None
        assert analysis.strengths == []
        assert analysis.item_pricing == []

    def test_score_is_not_clamped_here(self):
        assert parse_analysis('{"score": 140}').score == 140

    def test_fractional_delivery_days_round_up(self):
        analysis = parse_analysis(json.dumps(analysis_payload(deliveryDays=14.5)))
        assert analysis.delivery_days == 15
        assert parse_analysis(json.dumps(analysis_payload(deliveryDays=7.0))).delivery_days == 7

    @pytest.mark.parametrize("content", [
        None,
        "",
        "The vendor offers a good price.",
        "{not json}",
        '{"proposedPrice": 100}',
        '{"score": "excellent"}',
        '{"proposedPrice": 1, "score": NaN, "recommendation": "x"}',
        '{"score": Infinity}',
        '{"score": -Infinity}',
        '{"proposedPrice": NaN, "score": 50}',
    ])
    def test_unusable_output_fails(self, content):
        with pytest.raises(AnalysisFailed):
            parse_analysis(content)


class TestPrompt:

    def test_summarize_rfp(self, rfp):
        summary = summarize_rfp(rfp)
        assert summary.title == rfp.title
        assert summary.items[0].name == "Ergonomic chair"
        assert summary.items[0].quantity == 20
        assert summary.items[0].specifications == {"color": "black"}

    def test_format_summary(self, summary):
        text = format_rfp_summary(summary)
        assert "Title: Office Chairs Procurement" in text
        assert "Budget: 15000.0" in text
        assert "Delivery Deadline: Not specified" in text
        assert "1. Ergonomic chair - Quantity: 20 (color: black)" in text


class TestProposalAnalyzer:

    def test_analyze_sends_rfp_and_proposal(self, summary):
        client, completions = fake_client(json.dumps(analysis_payload(score=88)))
        analysis = ProposalAnalyzer(client=client).analyze(summary, "We offer chairs at $600")

        assert analysis.score == 88
        request = completions.requests[0]
        assert request["messages"][0]["role"] == "system"
        user_prompt = request["messages"][1]["content"]
        assert "Office Chairs Procurement" in user_prompt
        assert "We offer chairs at $600" in user_prompt

    def test_invalid_reply_is_not_retried(self, summary):
        client, completions = fake_client("no json here", json.dumps(analysis_payload()))
        with pytest.raises(AnalysisFailed):
            ProposalAnalyzer(client=client).analyze(summary, "offer")
        assert len(completions.requests) == 1

    def test_non_transient_error_fails_immediately(self, summary):
        client, completions = fake_client(ValueError("bad request"), json.dumps(analysis_payload()))
        with pytest.raises(AnalysisFailed):
            ProposalAnalyzer(client=client).analyze(summary, "offer")
        assert len(completions.requests) == 1

    def test_transient_error_is_retried(self, summary, no_sleep):
        error = APIConnectionError(request=httpx.Request("POST", "https://ai.test/v1/chat/completions"))
        client, completions = fake_client(error, json.dumps(analysis_payload(score=61)))
        assert ProposalAnalyzer(client=client).analyze(summary, "offer").score == 61
        assert len(completions.requests) == 2

    def test_transient_errors_exhaust_attempts(self, summary, no_sleep):
        request = httpx.Request("POST", "https://ai.test/v1/chat/completions")
        client, completions = fake_client(*[APIConnectionError(request=request) for _ in range(5)])
        with pytest.raises(AnalysisFailed):
            ProposalAnalyzer(client=client).analyze(summary, "offer")
        assert len(completions.requests) == 3
