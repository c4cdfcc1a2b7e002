"""
Notivate Backend - Vision OCR Unit Tests (Mocked)
===================================================

What:  Tests for VisionOCRService with an injected fake ImageAnnotator client.

What we test:
    ✅ First text annotation is the extracted text
    ✅ No annotations → "" (the pipeline turns that into no_text_found)
    ✅ Per-image API errors and transport errors → ExtractionFailedError
    ✅ Circuit breaker interaction and health check
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core import exceptions as google_exceptions

from notivate.exceptions import ExtractionFailedError
from notivate.services.resilience import CircuitBreaker
from notivate.services.vision_service import VisionOCRService


def _annotation_response(*descriptions, error_message=""):
    result = SimpleNamespace(
        error=SimpleNamespace(code=3 if error_message else 0, message=error_message),
        text_annotations=[SimpleNamespace(description=d) for d in descriptions],
    )
    return SimpleNamespace(responses=[result])


def _client(response=None, side_effect=None):
    client = MagicMock()
    client.batch_annotate_images = AsyncMock(return_value=response, side_effect=side_effect)
    return client


def _service(client, fast_retry, breaker=None):
    return VisionOCRService(
        client=client,
        retry_policy=fast_retry,
        circuit_breaker=breaker or CircuitBreaker(name="vision", failure_threshold=5),
    )


class TestVisionOCRService:

    @pytest.mark.asyncio
    async def test_returns_full_text_annotation(self, fast_retry, sample_image_bytes):
        """Only the first annotation (the whole text block) is returned."""
        client = _client(_annotation_response("Mitochondria\nis the powerhouse", "Mitochondria"))
        service = _service(client, fast_retry)

        text = await service.extract_text(sample_image_bytes)

        assert text == "Mitochondria\nis the powerhouse"
        request = client.batch_annotate_images.await_args.kwargs["requests"][0]
        assert request.image.content == sample_image_bytes
        assert client.batch_annotate_images.await_args.kwargs["timeout"] == 30.0

    @pytest.mark.asyncio
    async def test_no_annotations_returns_empty_string(self, fast_retry, sample_image_bytes):
        service = _service(_client(_annotation_response()), fast_retry)
        assert await service.extract_text(sample_image_bytes) == ""
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_api_reported_error(self, fast_retry, sample_image_bytes):
        service = _service(_client(_annotation_response(error_message="Bad image data.")), fast_retry)

        with pytest.raises(ExtractionFailedError) as exc_info:
            await service.extract_text(sample_image_bytes)
        assert exc_info.value.context["vision_message"] == "Bad image data."
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_empty_batch_response(self, fast_retry, sample_image_bytes):
        service = _service(_client(SimpleNamespace(responses=[])), fast_retry)
        with pytest.raises(ExtractionFailedError):
            await service.extract_text(sample_image_bytes)

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self, fast_retry, sample_image_bytes):
        client = _client(side_effect=google_exceptions.PermissionDenied("billing disabled"))
        service = _service(client, fast_retry)

        with pytest.raises(ExtractionFailedError):
            await service.extract_text(sample_image_bytes)
        assert client.batch_annotate_images.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_error_retried(self, fast_retry, sample_image_bytes):
        client = _client(
            side_effect=[
                google_exceptions.ServiceUnavailable("busy"),
                _annotation_response("Second try"),
            ]
        )
        service = _service(client, fast_retry)

        assert await service.extract_text(sample_image_bytes) == "Second try"
        assert client.batch_annotate_images.await_count == 2

    @pytest.mark.asyncio
    async def test_hung_call_fails_within_timeout(self, fast_retry, sample_image_bytes):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        client = _client(side_effect=hang)
        service = VisionOCRService(
            client=client,
            timeout=0.05,
            retry_policy=fast_retry,
            circuit_breaker=CircuitBreaker(name="vision", failure_threshold=5),
        )

        with pytest.raises(ExtractionFailedError):
            await service.extract_text(sample_image_bytes)
        assert client.batch_annotate_images.await_count == 1
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_breaker_fails_fast(self, fast_retry, sample_image_bytes):
        client = _client(_annotation_response("never read"))
        breaker = CircuitBreaker(name="vision", failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()
        service = _service(client, fast_retry, breaker)

        with pytest.raises(ExtractionFailedError) as exc_info:
            await service.extract_text(sample_image_bytes)
        assert exc_info.value.retry_after >= 1
        client.batch_annotate_images.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_check(self, fast_retry):
        breaker = CircuitBreaker(name="vision", failure_threshold=1)
        service = _service(_client(), fast_retry, breaker)
        assert await service.health_check() is True

        breaker.record_failure()
        assert await service.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_bad_inline_credentials(self):
        service = VisionOCRService(credentials_json="{not json")
        assert await service.health_check() is False
