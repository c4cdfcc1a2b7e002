"""
Notivate Backend - Google Cloud Vision OCR Adapter
====================================================

What:  TextExtractor implementation on Google Cloud Vision TEXT_DETECTION.
How:   Sends the image bytes through the async ImageAnnotator client, returns
       the first text annotation (the full-page text block) or "" when the
       image has none. Every call goes through the circuit breaker and the
       shared tenacity retry policy.
Who:   Built once by dependencies.build_services(); called by the
       orchestrator in the EXTRACTING state.

Credentials:
    GOOGLE_CLOUD_CREDENTIALS (inline service-account JSON) wins over
    GOOGLE_VISION_KEY_PATH (path to the key file). With neither, the client
    falls back to Application Default Credentials.
"""

import json
import logging
import time
from typing import Any, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import vision

from notivate.config import Settings
from notivate.exceptions import CircuitBreakerOpenError, ExtractionFailedError
from notivate.services.base import TextExtractor
from notivate.services.resilience import CircuitBreaker, RetryPolicy

logger = logging.getLogger(__name__)


class VisionOCRService(TextExtractor):
    """
    OCR adapter for Google Cloud Vision.

    The async client owns a gRPC channel bound to the running event loop, so
    it is created on first use rather than in the constructor. Tests inject a
    fake client instead.
    """

    def __init__(
        self,
        credentials_json: Optional[str] = None,
        key_path: Optional[str] = None,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[Any] = None,
    ):
        self._credentials_json = credentials_json
        self._key_path = key_path
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="vision")
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "VisionOCRService":
        service = cls(
            credentials_json=settings.google_cloud_credentials,
            key_path=settings.google_vision_key_path,
            timeout=settings.ocr_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
            circuit_breaker=CircuitBreaker.from_settings("vision", settings),
        )
        logger.info(
            "VisionOCRService initialized (timeout=%.0fs, credentials=%s)",
            settings.ocr_timeout_seconds,
            "inline" if settings.google_cloud_credentials else (
                "key_file" if settings.google_vision_key_path else "default"
            ),
        )
        return service

    def _get_client(self):
        if self._client is None:
            if self._credentials_json:
                info = json.loads(self._credentials_json)
                self._client = vision.ImageAnnotatorAsyncClient.from_service_account_info(info)
            elif self._key_path:
                self._client = vision.ImageAnnotatorAsyncClient.from_service_account_file(
                    self._key_path
                )
            else:
                self._client = vision.ImageAnnotatorAsyncClient()
        return self._client

    async def extract_text(self, image_bytes: bytes) -> str:
        """
        Runs TEXT_DETECTION on the image.

        Flow:
            1. Check circuit breaker → fail fast while OPEN
            2. Call Vision with retry (transient errors only), all attempts
               together bounded by `timeout`
            3. Record success/failure in circuit breaker
            4. Return the full-text annotation, or "" when there is none

        Raises:
            ExtractionFailedError: for every failure, including an OPEN breaker.
        """
        try:
            self.circuit_breaker.can_execute()
        except CircuitBreakerOpenError as e:
            raise ExtractionFailedError(
                message="Text extraction is temporarily unavailable. Please try again shortly.",
                retry_after=e.recovery_time,
                context=e.context,
            ) from e

        start_time = time.monotonic()
        try:
            text = await self.retry_policy.call(
                self._call_vision, image_bytes, log=logger, deadline=self.timeout
            )
        except ExtractionFailedError:
            self.circuit_breaker.record_failure()
            raise
        except (google_exceptions.GoogleAPIError, ConnectionError, TimeoutError) as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "Vision OCR failed after %.0fms: %s: %s",
                (time.monotonic() - start_time) * 1000,
                type(e).__name__,
                e,
            )
            raise ExtractionFailedError(context={"error_type": type(e).__name__}) from e
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("Unexpected Vision OCR error: %s", e, exc_info=True)
            raise ExtractionFailedError(context={"error_type": type(e).__name__}) from e

        self.circuit_breaker.record_success()
        logger.info(
            "Vision OCR completed in %.0fms, extracted %d chars",
            (time.monotonic() - start_time) * 1000,
            len(text),
        )
        return text

    async def _call_vision(self, image_bytes: bytes) -> str:
        client = self._get_client()
        request = vision.AnnotateImageRequest(
            image=vision.Image(content=image_bytes),
            features=[vision.Feature(type_=vision.Feature.Type.TEXT_DETECTION)],
        )
        response = await client.batch_annotate_images(requests=[request], timeout=self.timeout)

        if not response.responses:
            raise ExtractionFailedError(
                message="Text extraction returned an empty response",
                context={"reason": "no_responses"},
            )
        result = response.responses[0]
        # API-reported per-image errors arrive as a google.rpc.Status, not an exception
        if result.error and result.error.message:
            logger.warning("Vision API reported error code=%s: %s", result.error.code, result.error.message)
            raise ExtractionFailedError(
                context={"vision_code": result.error.code, "vision_message": result.error.message},
            )

        annotations = result.text_annotations
        if not annotations:
            return ""
        return annotations[0].description or ""

    async def health_check(self) -> bool:
        """
        Vision has no free ping endpoint; report unhealthy only while the
        breaker is OPEN or the client cannot be built from the credentials.
        """
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return False
        try:
            self._get_client()
        except (ValueError, OSError, auth_exceptions.GoogleAuthError) as e:
            logger.warning("Vision health check failed: %s", e)
            return False
        return True
