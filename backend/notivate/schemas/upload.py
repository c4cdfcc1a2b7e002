"""
Notivate Backend - Upload & Usage Response Schemas
====================================================

What:  Response bodies for POST /api/upload and GET /api/usage, plus the
       error envelopes shared by every endpoint.
Who:   routes/upload.py, routes/usage.py, the exception handlers in main.py
       (error shapes only, for OpenAPI docs).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from notivate.schemas.study_guide import StudyGuide


class UploadResponse(BaseModel):
    """
    Successful transform.

    Example:
        {"success": true, "rawText": "Photosynthesis ...", "studyGuide": {...}}
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    raw_text: str = Field(alias="rawText", description="Text extracted from the image")
    study_guide: StudyGuide = Field(alias="studyGuide")


class UsageResponse(BaseModel):
    """Current month usage; `limit` is null for unlimited (premium) callers."""

    model_config = ConfigDict(populate_by_name=True)

    month: str = Field(description="UTC calendar month, YYYY-MM")
    transforms_this_month: int = Field(alias="transformsThisMonth", ge=0)
    limit: Optional[int] = None
    subscription_tier: str = Field(alias="subscriptionTier")


class ErrorResponse(BaseModel):
    """
    Standardized error envelope.

    Example:
        {
            "error": "no_text_found",
            "message": "No text could be extracted from this image. ...",
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class QuotaExceededResponse(ErrorResponse):
    """403 body: the error envelope plus the counters behind the rejection."""

    model_config = ConfigDict(populate_by_name=True)

    current_usage: int = Field(alias="currentUsage")
    limit: int
    upgrade_path: str = Field(alias="upgradePath")
