"""
Notivate Backend - External Capability Interfaces
===================================================

What:  Abstract contracts for the two external capabilities the pipeline uses:
       text extraction (OCR) and study guide synthesis (generative model).
How:   Concrete adapters inherit and implement the async methods. The
       orchestrator depends only on these interfaces, so tests pass fakes and
       a provider swap touches one adapter module.
Who:   VisionOCRService, GeminiService; consumed by TransformationOrchestrator.

Error contract:
    Adapters translate every provider-specific exception into the Notivate
    hierarchy before it leaves them. The orchestrator never sees a
    google.api_core exception, a tenacity error or a CircuitBreakerOpenError.
"""

from abc import ABC, abstractmethod

from notivate.schemas.study_guide import StudyGuide


class TextExtractor(ABC):
    """
    Extracts machine-readable text from image bytes.

    Implementations:
        - VisionOCRService: Google Cloud Vision TEXT_DETECTION
    """

    @abstractmethod
    async def extract_text(self, image_bytes: bytes) -> str:
        """
        Args:
            image_bytes: Raw bytes of a validated image.

        Returns:
            The full detected text. Empty string when the image holds no text;
            never None.

        Raises:
            ExtractionFailedError: The OCR capability could not be reached,
                rejected the request, timed out or answered malformed.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the capability looks usable. Must not consume paid quota."""
        ...


class GuideSynthesizer(ABC):
    """
    Turns extracted note text into a StudyGuide.

    Implementations:
        - GeminiService: Google Gemini, JSON response mode
    """

    @abstractmethod
    async def synthesize_guide(self, text: str) -> StudyGuide:
        """
        Args:
            text: Non-empty extracted text. Empty input is a caller bug.

        Returns:
            A fully validated StudyGuide. Never partially populated.

        Raises:
            SynthesisUnavailableError: Network, auth, quota or timeout failure.
            SynthesisMalformedError: The model answered with data that is not
                a valid StudyGuide.
            ValueError: `text` is empty or whitespace.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
