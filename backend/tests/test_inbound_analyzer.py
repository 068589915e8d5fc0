"""Tests for the two-pass inbound email analyzer with a mocked EmailSignalAgent."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from homestretch.agents.base import AgentResult
from homestretch.domain.enums import (
    ClassificationLabel,
    EarnestSignal,
    EmailPipelineStage,
    SuggestedUserAction,
)
from homestretch.domain.schemas import (
    DateFact,
    EarnestSignalResult,
    EmailKeyFacts,
    EmailPipelineResult,
)
from homestretch.services.inbound_analyzer import (
    AMBIGUOUS_WARNING,
    EMPTY_BODY_WARNING,
    KEPT_HEAD_CHARS,
    KEPT_TAIL_CHARS,
    SUBSTAGE_WARNING,
    EarnestInboundAnalyzer,
    EmailInput,
    normalize_body,
    strip_html,
    truncate_long_text,
)
from homestretch.services.pipeline_errors import CollaboratorError

RECEIVED = datetime(2026, 10, 5, 14, 0, tzinfo=timezone.utc)


def _email(text="Wire instructions are attached for the earnest deposit.", html=None):
    return EmailInput(
        subject="Earnest money",
        from_email="erin@titleco.test",
        to=["main-st@inbox.test"],
        received_at=RECEIVED,
        text_body=text,
        html_body=html,
    )


def _pipeline(stage=EmailPipelineStage.EARNEST_MONEY_DEPOSIT, confidence=0.9, **kw):
    return EmailPipelineResult(
        summary="  Escrow sent wiring instructions.  ",
        primary_stage=stage,
        confidence=confidence,
        **kw,
    )


@pytest.fixture
def signal_agent():
    agent = MagicMock()
    agent.classify_stage = AsyncMock()
    agent.detect_earnest_signal = AsyncMock()
    return agent


class TestBodyNormalization:
    def test_prefers_text_body(self):
        assert normalize_body("  plain  ", "<p>html</p>") == "plain"

    def test_strips_html_fallback(self):
        body = normalize_body(None, "<style>p{}</style><p>Hello&nbsp;there</p><p>Second</p>")
        assert "Hello" in body and "Second" in body
        assert "<" not in body and "p{}" not in body

    def test_strip_html_line_breaks(self):
        assert strip_html("one<br>two") == "one\ntwo"

    def test_short_text_untouched(self):
        assert truncate_long_text("x" * 12000) == "x" * 12000

    def test_long_text_keeps_head_and_tail(self):
        text = "h" * 8000 + "m" * 2000 + "t" * 5000
        result = truncate_long_text(text)
        assert result.startswith("h" * KEPT_HEAD_CHARS)
        assert result.endswith("t" * KEPT_TAIL_CHARS)
        assert "[... email body truncated for length ...]" in result
        assert "mm" not in result


class TestParsePipeline:
    async def test_empty_body_skips_model(self, signal_agent):
        analyzer = EarnestInboundAnalyzer(signal_agent=signal_agent)

        result = await analyzer.parse_pipeline(_email(text="  ok ", html=None))

        assert result.primary_stage == EmailPipelineStage.UNKNOWN
        assert result.confidence == 0
        assert result.warnings == [EMPTY_BODY_WARNING]
        signal_agent.classify_stage.assert_not_called()

    async def test_sanitizes_model_output(self, signal_agent):
        signal_agent.classify_stage.return_value = AgentResult.success(
            data=_pipeline(
                stage=EmailPipelineStage.DUE_DILIGENCE,
                substage="appraisal",
                key_facts=EmailKeyFacts(
                    dates=[
                        DateFact(label="Inspection", raw_text="tomorrow"),
                        DateFact(label="Deadline", raw_text="next Friday"),
                        DateFact(label=" ", raw_text="ignored"),
                    ]
                ),
            )
        )
        analyzer = EarnestInboundAnalyzer(signal_agent=signal_agent)

        result = await analyzer.parse_pipeline(_email())

        assert result.summary == "Escrow sent wiring instructions."
        assert result.substage is None
        assert SUBSTAGE_WARNING in result.warnings
        assert [d.iso_date for d in result.key_facts.dates] == ["2026-10-06", None]
        assert "Could not normalize explicit date text: next Friday" in result.warnings

        payload = signal_agent.classify_stage.call_args.args[0]
        assert payload["body"] == "Wire instructions are attached for the earnest deposit."
        assert payload["received_at_iso"] == RECEIVED.isoformat()

    async def test_unknown_stage_warns(self, signal_agent):
        signal_agent.classify_stage.return_value = AgentResult.success(
            data=_pipeline(stage=EmailPipelineStage.UNKNOWN, confidence=0.2)
        )
        result = await EarnestInboundAnalyzer(signal_agent=signal_agent).parse_pipeline(_email())
        assert AMBIGUOUS_WARNING in result.warnings

    async def test_model_failure_raises(self, signal_agent):
        signal_agent.classify_stage.return_value = AgentResult.failure("quota exceeded")
        with pytest.raises(CollaboratorError, match="quota exceeded"):
            await EarnestInboundAnalyzer(signal_agent=signal_agent).parse_pipeline(_email())


class TestAnalyze:
    async def test_earnest_email_runs_second_pass(self, signal_agent):
        signal_agent.classify_stage.return_value = AgentResult.success(data=_pipeline())
        signal_agent.detect_earnest_signal.return_value = AgentResult.success(
            data=EarnestSignalResult(
                earnest_signal=EarnestSignal.WIRE_INSTRUCTIONS_PROVIDED,
                suggested_user_action=SuggestedUserAction.CONFIRM_EARNEST_COMPLETE,
                confidence=0.88,
                reason=" Wire instructions provided. ",
                warnings=["Verify wire instructions by phone."],
            )
        )

        analysis = await EarnestInboundAnalyzer(signal_agent=signal_agent).analyze(_email(), "p1")

        assert analysis.version == 1
        assert analysis.pipeline_label == ClassificationLabel.EARNEST_MONEY
        assert analysis.earnest_signal == EarnestSignal.WIRE_INSTRUCTIONS_PROVIDED
        assert analysis.confidence == 0.88
        assert analysis.reason == "Wire instructions provided."
        assert analysis.warnings == ["Verify wire instructions by phone."]
        kwargs = signal_agent.detect_earnest_signal.call_args.kwargs
        assert kwargs["pipeline_confidence"] == 0.9
        assert kwargs["property_id"] == "p1"

    @pytest.mark.parametrize(
        "stage,label",
        [
            (EmailPipelineStage.FINANCING_PERIOD, ClassificationLabel.FINANCING),
            (EmailPipelineStage.SIGNING_DATE, ClassificationLabel.CLOSING),
            (EmailPipelineStage.CLOSING, ClassificationLabel.CLOSING),
            (EmailPipelineStage.TITLE_ESCROW, ClassificationLabel.TITLE_ESCROW),
        ],
    )
    async def test_non_earnest_email_skips_second_pass(self, signal_agent, stage, label):
        signal_agent.classify_stage.return_value = AgentResult.success(
            data=_pipeline(stage=stage, confidence=0.75)
        )

        analysis = await EarnestInboundAnalyzer(signal_agent=signal_agent).analyze(_email())

        assert analysis.pipeline_label == label
        assert analysis.earnest_signal == EarnestSignal.NONE
        assert analysis.suggested_user_action == SuggestedUserAction.NONE
        assert analysis.confidence == 0.75
        assert analysis.reason == f"Email classified as {label.value}."
        signal_agent.detect_earnest_signal.assert_not_called()

    async def test_empty_email_is_unknown_without_model_calls(self, signal_agent):
        analysis = await EarnestInboundAnalyzer(signal_agent=signal_agent).analyze(_email(text=""))

        assert analysis.pipeline_label == ClassificationLabel.UNKNOWN
        assert analysis.confidence == 0
        signal_agent.classify_stage.assert_not_called()
        signal_agent.detect_earnest_signal.assert_not_called()
