"""
Notivate Backend - Gemini Synthesis Unit Tests (Mocked)
=========================================================

What:  Tests for parse_study_guide and GeminiService with a mocked model.
How:   The service accepts an injected model object; generate_content_async
       is an AsyncMock, so no network and no API key are involved.

What we test:
    ✅ Fenced and unfenced answers parse to the same StudyGuide
    ✅ Malformed answers (empty, not JSON, not an object, wrong shape)
    ✅ Unavailable vs malformed failure split
    ✅ Circuit breaker interaction
    ❌ Real API calls (use integration tests for that)
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from notivate.exceptions import SynthesisMalformedError, SynthesisUnavailableError
from notivate.services.gemini_service import (
    STUDY_GUIDE_PROMPT,
    GeminiService,
    parse_study_guide,
    strip_code_fence,
)
from notivate.services.resilience import CircuitBreaker


class _BlockedResponse:
    """Mimics a response whose candidate was blocked: .text raises ValueError."""

    @property
    def text(self):
        raise ValueError("The `response.text` quick accessor requires a valid Part")


def _model_returning(text):
    model = MagicMock()
    model.generate_content_async = AsyncMock(return_value=SimpleNamespace(text=text))
    return model


def _service(model, fast_retry, breaker=None):
    return GeminiService(
        model=model,
        retry_policy=fast_retry,
        circuit_breaker=breaker or CircuitBreaker(name="gemini", failure_threshold=5),
    )


class TestParseStudyGuide:

    def test_plain_json(self, sample_guide_dict):
        guide = parse_study_guide(json.dumps(sample_guide_dict))
        assert guide.title == "Photosynthesis Basics"
        assert len(guide.sections) == 2
        assert guide.diagrams[0].diagram_source.startswith("flowchart LR")
        assert len(guide.quiz_questions) == 3

    @pytest.mark.parametrize("fence", ["```json\n{}\n```", "```\n{}\n```", "  ```JSON\n{}```  "])
    def test_fenced_equals_unfenced(self, sample_guide_dict, fence):
        """A fenced code block around the answer does not change the result."""
        body = json.dumps(sample_guide_dict, indent=2)
        fenced = fence.replace("{}", body)
        assert parse_study_guide(fenced) == parse_study_guide(body)

    def test_strip_code_fence_leaves_plain_text(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_absent_or_null_diagrams_are_empty(self, sample_guide_dict):
        del sample_guide_dict["diagrams"]
        assert parse_study_guide(json.dumps(sample_guide_dict)).diagrams == []

        sample_guide_dict["diagrams"] = None
        assert parse_study_guide(json.dumps(sample_guide_dict)).diagrams == []

    def test_duplicate_key_terms_collapse(self, sample_guide_dict):
        sample_guide_dict["sections"][0]["keyTerms"] = ["ATP", "NADPH", "ATP"]
        guide = parse_study_guide(json.dumps(sample_guide_dict))
        assert guide.sections[0].key_terms == ["ATP", "NADPH"]

    @pytest.mark.parametrize(
        "raw,reason",
        [
            ("", "empty_response"),
            ("```json\n```", "empty_response"),
            ("Sure! Here is your study guide:", "invalid_json"),
            ('{"title": "cut off', "invalid_json"),
            ("[1, 2, 3]", "not_an_object"),
        ],
    )
    def test_malformed_answers(self, raw, reason):
        with pytest.raises(SynthesisMalformedError) as exc_info:
            parse_study_guide(raw)
        assert exc_info.value.context["reason"] == reason

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda g: g.update(sections=[]),
            lambda g: g.pop("quizQuestions"),
            lambda g: g.pop("title"),
            lambda g: g["quizQuestions"][0].update(difficulty="impossible"),
            lambda g: g["diagrams"][0].update(type="pie"),
            lambda g: g["diagrams"][0].update(diagramSource=""),
        ],
    )
    def test_schema_mismatch_is_all_or_nothing(self, sample_guide_dict, mutate):
        """One bad field rejects the whole guide; nothing is partially repaired."""
        mutate(sample_guide_dict)
        with pytest.raises(SynthesisMalformedError) as exc_info:
            parse_study_guide(json.dumps(sample_guide_dict))
        assert exc_info.value.context["reason"] == "schema_mismatch"


class TestGeminiServiceMocked:

    @pytest.mark.asyncio
    async def test_synthesize_success(self, sample_guide_dict, fast_retry):
        """A valid answer is returned as a StudyGuide and closes the breaker."""
        model = _model_returning(json.dumps(sample_guide_dict))
        service = _service(model, fast_retry)

        guide = await service.synthesize_guide("Light reactions make ATP.")

        assert guide.subject == "Biology"
        assert service.circuit_breaker.failure_count == 0
        prompt = model.generate_content_async.await_args.args[0]
        assert "Light reactions make ATP." in prompt
        assert "{text}" not in prompt
        assert model.generate_content_async.await_args.kwargs["request_options"] == {"timeout": 60.0}

    @pytest.mark.asyncio
    async def test_prompt_keeps_literal_braces_in_text(self, sample_guide_dict, fast_retry):
        """Notes containing braces are inserted verbatim."""
        model = _model_returning(json.dumps(sample_guide_dict))
        service = _service(model, fast_retry)

        await service.synthesize_guide("f(x) = {x | x > 0}")

        assert "f(x) = {x | x > 0}" in model.generate_content_async.await_args.args[0]

    def test_prompt_template_has_single_placeholder(self):
        assert STUDY_GUIDE_PROMPT.count("{text}") == 1

    @pytest.mark.asyncio
    async def test_empty_text_rejected_before_call(self, fast_retry):
        model = _model_returning("{}")
        service = _service(model, fast_retry)

        with pytest.raises(ValueError):
            await service.synthesize_guide("   \n")
        model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_answer(self, fast_retry):
        """The upstream answered, so the breaker is not charged."""
        service = _service(_model_returning("definitely not json"), fast_retry)

        with pytest.raises(SynthesisMalformedError):
            await service.synthesize_guide("some notes")
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_blocked_response_is_malformed(self, fast_retry):
        model = MagicMock()
        model.generate_content_async = AsyncMock(return_value=_BlockedResponse())
        service = _service(model, fast_retry)

        with pytest.raises(SynthesisMalformedError) as exc_info:
            await service.synthesize_guide("some notes")
        assert exc_info.value.context["reason"] == "no_text_in_response"
        assert model.generate_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_permanent_error_is_unavailable(self, fast_retry):
        model = MagicMock()
        model.generate_content_async = AsyncMock(
            side_effect=google_exceptions.PermissionDenied("API key not valid")
        )
        service = _service(model, fast_retry)

        with pytest.raises(SynthesisUnavailableError):
            await service.synthesize_guide("some notes")
        assert model.generate_content_async.await_count == 1
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_transient_error_retried_then_unavailable(self, fast_retry):
        model = MagicMock()
        model.generate_content_async = AsyncMock(
            side_effect=google_exceptions.ServiceUnavailable("overloaded")
        )
        service = _service(model, fast_retry)

        with pytest.raises(SynthesisUnavailableError):
            await service.synthesize_guide("some notes")
        assert model.generate_content_async.await_count == 3

    @pytest.mark.asyncio
    async def test_hung_call_is_unavailable_within_timeout(self, fast_retry):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        model = MagicMock()
        model.generate_content_async = AsyncMock(side_effect=hang)
        service = GeminiService(
            model=model,
            timeout=0.05,
            retry_policy=fast_retry,
            circuit_breaker=CircuitBreaker(name="gemini", failure_threshold=5),
        )

        with pytest.raises(SynthesisUnavailableError):
            await service.synthesize_guide("some notes")
        assert model.generate_content_async.await_count == 1
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_transient_error_then_success(self, sample_guide_dict, fast_retry):
        model = MagicMock()
        model.generate_content_async = AsyncMock(
            side_effect=[
                google_exceptions.TooManyRequests("slow down"),
                SimpleNamespace(text=json.dumps(sample_guide_dict)),
            ]
        )
        service = _service(model, fast_retry)

        guide = await service.synthesize_guide("some notes")
        assert guide.title == "Photosynthesis Basics"

    @pytest.mark.asyncio
    async def test_open_breaker_fails_fast(self, fast_retry):
        """While OPEN no call is made and the error carries retry_after."""
        model = _model_returning("{}")
        breaker = CircuitBreaker(name="gemini", failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()
        service = _service(model, fast_retry, breaker)

        with pytest.raises(SynthesisUnavailableError) as exc_info:
            await service.synthesize_guide("some notes")
        assert exc_info.value.retry_after >= 1
        model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_check_returns_bool(self, fast_retry):
        service = _service(_model_returning("{}"), fast_retry)
        with patch("notivate.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.return_value = [SimpleNamespace(name="models/gemini-1.5-flash")]
            assert await service.health_check() is True

            mock_genai.list_models.side_effect = google_exceptions.PermissionDenied("bad key")
            assert await service.health_check() is False
