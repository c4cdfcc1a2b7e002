"""
Notivate Backend - Google Gemini Study Guide Synthesis
========================================================

What:  GuideSynthesizer implementation on Google Gemini.
How:   Sends the extracted text inside a fixed instruction template, in JSON
       response mode, with fixed generation constants. The answer is parsed
       by `parse_study_guide`, which tolerates a fenced code block and
       validates the whole structure with Pydantic.
Who:   Built once by dependencies.build_services(); called by the
       orchestrator in the SYNTHESIZING state.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker per adapter instance
    3. Timeout per attempt (request_options) and the same budget as an
       overall deadline across all attempts and backoff

Failure split:
    SynthesisUnavailableError  - could not get an answer (network, auth, quota,
                                 timeout, breaker OPEN)
    SynthesisMalformedError    - got an answer that is not a valid StudyGuide
"""

import json
import logging
import re
import time
from typing import Any, Optional

import google.generativeai as genai
from pydantic import ValidationError as PydanticValidationError

from notivate.config import Settings
from notivate.exceptions import (
    CircuitBreakerOpenError,
    SynthesisMalformedError,
    SynthesisUnavailableError,
)
from notivate.schemas.study_guide import StudyGuide
from notivate.services.base import GuideSynthesizer
from notivate.services.resilience import CircuitBreaker, RetryPolicy

logger = logging.getLogger(__name__)

# Fixed so output shape stays stable; not exposed as settings
TEMPERATURE = 0.3
MAX_OUTPUT_TOKENS = 2500

STUDY_GUIDE_PROMPT = """You are an expert tutor. The text below was extracted by OCR from a \
photo of a student's notes. It may contain recognition errors: silently correct obvious \
OCR mistakes and use context to fill gaps.

Turn it into a study guide. Respond with exactly ONE JSON object and nothing else \
(no prose, no markdown), matching this shape:

{
  "title": "short descriptive title",
  "subject": "academic subject, e.g. Biology",
  "summary": "2-3 sentence overview",
  "sections": [
    {
      "heading": "section heading",
      "content": "explanation in full sentences",
      "keyTerms": ["term", "..."],
      "bullets": ["key point", "..."]
    }
  ],
  "diagrams": [
    {
      "type": "flowchart | mindmap | timeline | sequence",
      "title": "what the diagram shows",
      "diagramSource": "complete, valid Mermaid source"
    }
  ],
  "quizQuestions": [
    {"question": "...", "answer": "...", "difficulty": "easy | medium | hard"}
  ]
}

Rules:
- 2 to 4 sections.
- 3 to 5 quiz questions with varying difficulty.
- 0 to 2 diagrams. Only include a diagram when it genuinely clarifies the material. \
If none does, omit the "diagrams" key entirely. Never emit an invalid diagram.

Notes:
\"\"\"
{text}
\"\"\"
"""

# Optional ```json / ``` fence around the whole answer
_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(?P<body>.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fence(raw: str) -> str:
    match = _FENCE_RE.match(raw)
    return match.group("body").strip() if match else raw.strip()


def parse_study_guide(raw: str) -> StudyGuide:
    """
    Parses the model's answer into a StudyGuide, all-or-nothing.

    Raises:
        SynthesisMalformedError: empty answer, invalid JSON, or JSON that does
            not validate as a StudyGuide.
    """
    body = strip_code_fence(raw or "")
    if not body:
        raise SynthesisMalformedError(context={"reason": "empty_response"})

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise SynthesisMalformedError(
            context={"reason": "invalid_json", "position": e.pos, "preview": body[:200]},
        ) from e

    if not isinstance(data, dict):
        raise SynthesisMalformedError(
            context={"reason": "not_an_object", "json_type": type(data).__name__},
        )

    try:
        return StudyGuide.model_validate(data)
    except PydanticValidationError as e:
        raise SynthesisMalformedError(
            context={"reason": "schema_mismatch", "errors": e.error_count()},
        ) from e


class GeminiService(GuideSynthesizer):
    """
    Google Gemini implementation of guide synthesis.

    Error Handling Chain:
        API call fails → tenacity retries transient errors
        → still failing → record circuit breaker failure → SynthesisUnavailableError
        → threshold reached → later calls fail instantly until recovery timeout
        Answer received → record success → parse (may raise SynthesisMalformedError)
    """

    def __init__(
        self,
        api_key: str = "",
        model_name: str = "gemini-1.5-flash",
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        model: Optional[Any] = None,
    ):
        self.model_name = model_name
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="gemini")

        if model is None:
            # The SDK keeps auth in module-level state
            if api_key and api_key != "your_gemini_api_key_here":
                genai.configure(api_key=api_key)
            model = genai.GenerativeModel(
                model_name,
                generation_config=genai.GenerationConfig(
                    temperature=TEMPERATURE,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                    response_mime_type="application/json",
                ),
            )
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiService":
        service = cls(
            api_key=settings.gemini_api_key,
            model_name=settings.gemini_model,
            timeout=settings.synthesis_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
            circuit_breaker=CircuitBreaker.from_settings("gemini", settings),
        )
        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )
        return service

    async def synthesize_guide(self, text: str) -> StudyGuide:
        if not text or not text.strip():
            raise ValueError("synthesize_guide requires non-empty text")

        try:
            self.circuit_breaker.can_execute()
        except CircuitBreakerOpenError as e:
            raise SynthesisUnavailableError(retry_after=e.recovery_time, context=e.context) from e

        prompt = STUDY_GUIDE_PROMPT.replace("{text}", text)
        start_time = time.monotonic()
        try:
            raw = await self.retry_policy.call(
                self._call_gemini, prompt, log=logger, deadline=self.timeout
            )
        except SynthesisMalformedError as e:
            self.circuit_breaker.record_success()
            logger.warning("Gemini returned no usable text: %s", e.context)
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "Gemini synthesis failed after %.0fms: %s: %s",
                (time.monotonic() - start_time) * 1000,
                type(e).__name__,
                e,
            )
            raise SynthesisUnavailableError(context={"error_type": type(e).__name__}) from e

        # The upstream answered; a bad answer is not an availability problem
        self.circuit_breaker.record_success()
        logger.info(
            "Gemini synthesis completed in %.0fms, response %d chars",
            (time.monotonic() - start_time) * 1000,
            len(raw),
        )

        try:
            return parse_study_guide(raw)
        except SynthesisMalformedError as e:
            logger.warning("Gemini returned a malformed study guide: %s", e.context)
            raise

    async def _call_gemini(self, prompt: str) -> str:
        response = await self.model.generate_content_async(
            prompt,
            request_options={"timeout": self.timeout},
        )
        try:
            return response.text or ""
        except ValueError as e:
            # .text raises when the candidate was blocked or has no parts
            raise SynthesisMalformedError(
                context={"reason": "no_text_in_response", "detail": str(e)},
            ) from e

    async def health_check(self) -> bool:
        """
        Lists models (no token cost) to verify the key and connectivity.
        """
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return False
        try:
            model_names = [m.name for m in genai.list_models()]
        except Exception as e:
            logger.warning("Gemini health check failed: %s", e)
            return False
        target = f"models/{self.model_name}"
        if target not in model_names:
            logger.warning("Configured model %s not found in available models", target)
        return True
