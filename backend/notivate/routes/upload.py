"""
Notivate Backend - Upload Route Handler
=========================================

What:  POST /api/upload: photo of notes in, study guide out.
How:   Reads the multipart `image` field and hands it, with the resolved
       caller, to the TransformationOrchestrator. Failures propagate as
       NotivateError subclasses and are rendered by the global handlers.
Who:   The frontend upload screen.

Request Flow:
    1. get_caller resolves the bearer token (401 on failure)
    2. Image bytes read into memory (size checked by the upload store)
    3. Orchestrator: validate → quota → OCR → synthesis → accounting
    4. 200 {success, rawText, studyGuide}
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from notivate.dependencies import get_caller, get_orchestrator
from notivate.exceptions import ValidationError
from notivate.schemas.upload import ErrorResponse, QuotaExceededResponse, UploadResponse
from notivate.services.identity_service import CallerContext
from notivate.services.transform_service import TransformationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Upload"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"description": "Missing, invalid or text-free image", "model": ErrorResponse},
        401: {"description": "Missing or invalid credential", "model": ErrorResponse},
        403: {"description": "Monthly transform limit reached", "model": QuotaExceededResponse},
        500: {"description": "OCR, synthesis or accounting failure", "model": ErrorResponse},
    },
    summary="Turn a photo of notes into a study guide",
    description=(
        "Upload a photo of notes (jpg, jpeg, png, webp, heic or gif, max 10MB). "
        "The text is extracted with Google Cloud Vision and turned into a study guide "
        "with sections, key terms, diagrams and quiz questions by Google Gemini. "
        "Free accounts get 5 transforms per calendar month."
    ),
)
async def upload_image(
    image: Optional[UploadFile] = File(default=None, description="Photo of notes"),
    caller: CallerContext = Depends(get_caller),
    orchestrator: TransformationOrchestrator = Depends(get_orchestrator),
) -> UploadResponse:
    # Missing field is a 400 like every other upload problem, not a 422
    if image is None:
        raise ValidationError(message="No image file provided", field="image")

    try:
        content = await image.read()
    finally:
        await image.close()

    logger.info(
        "Upload from user %s: filename=%s, size=%d bytes",
        caller.user_id,
        image.filename or "unknown",
        len(content),
    )

    result = await orchestrator.transform(
        caller=caller,
        filename=image.filename,
        content=content,
        content_type=image.content_type,
    )
    return UploadResponse(raw_text=result.raw_text, study_guide=result.study_guide)
