"""
Notivate Backend - Usage Route Handler
========================================

GET /api/usage: how many transforms the caller has used this month, and
their limit (null when unlimited). Drives the "3 of 5 left" banner.
"""

from fastapi import APIRouter, Depends

from notivate.dependencies import get_caller, get_usage_service
from notivate.schemas.upload import ErrorResponse, UsageResponse
from notivate.services.identity_service import CallerContext
from notivate.services.usage_service import UsageService

router = APIRouter(prefix="/api", tags=["Usage"])


@router.get(
    "/usage",
    response_model=UsageResponse,
    responses={
        401: {"description": "Missing or invalid credential", "model": ErrorResponse},
        500: {"description": "Usage store unavailable", "model": ErrorResponse},
    },
    summary="Current month usage",
)
async def get_usage(
    caller: CallerContext = Depends(get_caller),
    usage: UsageService = Depends(get_usage_service),
) -> UsageResponse:
    summary = await usage.get_usage_summary(caller.user_id, caller.subscription_tier)
    return UsageResponse(
        month=summary.month,
        transforms_this_month=summary.transforms_this_month,
        limit=summary.limit,
        subscription_tier=summary.tier.value,
    )
