"""
Notivate Backend - Transformation Orchestrator
================================================

What:  Runs one "photo of notes → study guide" request end to end.
How:   An explicit state machine over injected collaborators. Each request
       gets its own PipelineRun; no state is shared between runs and no lock
       is held across an await.
Who:   routes/upload.py, through dependencies.get_orchestrator.

State Machine:
    RECEIVED → VALIDATING → QUOTA_CHECKED → EXTRACTING → EXTRACTED
             → SYNTHESIZING → SYNTHESIZED → ACCOUNTED → RESPONDED
    FAILED(reason) reachable from every non-terminal state.
    RELEASED always recorded last: the transient upload is disposed on every
    exit path, including unexpected faults and cancellation.

Ordering guarantees:
    - quota check strictly before extraction and synthesis
    - empty or whitespace text → NoTextFound, synthesis never invoked
    - usage increment strictly after synthesis success, free tier only
    - an increment failure is logged and the request still succeeds
    - the check and the increment are not one reservation: N simultaneous
      requests from a free user at 4/5 all pass the gate and end at 4+N
"""

import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

import aiofiles

from notivate.exceptions import (
    AccountingError,
    NoTextFoundError,
    NotivateError,
    QuotaExceededError,
)
from notivate.schemas.study_guide import StudyGuide
from notivate.services.base import GuideSynthesizer, TextExtractor
from notivate.services.identity_service import CallerContext
from notivate.services.upload_store import StoredUpload, UploadStore
from notivate.services.usage_service import AccountingOutcome, AccountingResult, UsageService

logger = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    QUOTA_CHECKED = "quota_checked"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    SYNTHESIZING = "synthesizing"
    SYNTHESIZED = "synthesized"
    ACCOUNTED = "accounted"
    RESPONDED = "responded"
    FAILED = "failed"
    RELEASED = "released"


@dataclass
class TransformResult:
    raw_text: str
    study_guide: StudyGuide


@dataclass
class PipelineRun:
    """
    Record of one pipeline execution.

    `state` is the terminal state reached before release (RESPONDED or
    FAILED); `history` lists every state entered, ending with RELEASED.
    """

    caller: CallerContext
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: PipelineState = PipelineState.RECEIVED
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    failure_reason: Optional[str] = None
    error: Optional[Exception] = None
    result: Optional[TransformResult] = None
    accounting: Optional[AccountingResult] = None
    released: bool = False

    def advance(self, state: PipelineState) -> None:
        logger.info("[%s] %s → %s", self.run_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, error: Exception) -> None:
        reason = error.error_code if isinstance(error, NotivateError) else "internal_error"
        logger.info(
            "[%s] %s → failed(%s)",
            self.run_id,
            self.state.value,
            reason,
        )
        self.state = PipelineState.FAILED
        self.history.append(PipelineState.FAILED)
        self.failure_reason = reason
        self.error = error

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class TransformationOrchestrator:
    def __init__(
        self,
        extractor: TextExtractor,
        synthesizer: GuideSynthesizer,
        usage: UsageService,
        uploads: UploadStore,
        upgrade_path: str = "/pricing",
    ):
        self.extractor = extractor
        self.synthesizer = synthesizer
        self.usage = usage
        self.uploads = uploads
        self.upgrade_path = upgrade_path

    async def transform(
        self,
        caller: CallerContext,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str],
    ) -> TransformResult:
        """
        Runs the pipeline and returns its result.

        Raises:
            The NotivateError that moved the run to FAILED (ValidationError,
            QuotaExceededError, NoTextFoundError, ExtractionFailedError,
            SynthesisUnavailableError, SynthesisMalformedError, AccountingError,
            FileStorageError), or any unexpected exception unchanged.
        """
        run = await self.run(caller, filename, content, content_type)
        if run.error is not None:
            raise run.error
        return run.result

    async def run(
        self,
        caller: CallerContext,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str],
    ) -> PipelineRun:
        """
        Runs the pipeline and returns the PipelineRun record, with the
        failure captured in `run.error` instead of raised. Cancellation still
        propagates (after release).
        """
        run = PipelineRun(caller=caller)
        upload: Optional[StoredUpload] = None
        try:
            run.advance(PipelineState.VALIDATING)
            # acquire() disposes the upload on every exit from this block
            async with self.uploads.acquire(filename, content, content_type) as upload:
                result = await self._process(run, upload)
            run.result = result
            run.advance(PipelineState.RESPONDED)
        except Exception as e:
            if not isinstance(e, NotivateError):
                logger.error("[%s] Unexpected pipeline fault: %s", run.run_id, e, exc_info=True)
            run.fail(e)
        finally:
            # Nothing was stored when validation rejected the upload
            run.released = upload is None or upload.released
            run.history.append(PipelineState.RELEASED)
            logger.info("[%s] released (terminal=%s)", run.run_id, run.state.value)
        return run

    async def _process(self, run: PipelineRun, upload: StoredUpload) -> TransformResult:
        caller = run.caller

        # ── Quota gate ────────────────────────────────────────────────────
        check = await self.usage.check_quota(caller.user_id, caller.subscription_tier)
        if check.outcome == AccountingOutcome.FAILED:
            raise AccountingError(context={"user_id": str(caller.user_id)})
        quota = check.quota
        if not quota.allowed:
            raise QuotaExceededError(
                current_usage=quota.current_count,
                limit=quota.limit,
                upgrade_path=self.upgrade_path,
                context={"user_id": str(caller.user_id)},
            )
        run.advance(PipelineState.QUOTA_CHECKED)

        # ── Extraction ────────────────────────────────────────────────────
        run.advance(PipelineState.EXTRACTING)
        async with aiofiles.open(upload.path, "rb") as f:
            image_bytes = await f.read()
        text = await self.extractor.extract_text(image_bytes)
        if not text or not text.strip():
            raise NoTextFoundError(context={"file": upload.path.name})
        run.advance(PipelineState.EXTRACTED)

        # ── Synthesis ─────────────────────────────────────────────────────
        run.advance(PipelineState.SYNTHESIZING)
        guide = await self.synthesizer.synthesize_guide(text)
        run.advance(PipelineState.SYNTHESIZED)

        # ── Accounting (free tier only, never fails the request) ─────────
        if not caller.is_premium:
            run.accounting = await self.usage.increment_usage(caller.user_id)
            run.advance(PipelineState.ACCOUNTED)

        return TransformResult(raw_text=text, study_guide=guide)
