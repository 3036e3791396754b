"""
NoteWise Backend — Analysis Route Handler
==========================================

What:  POST /api/analyze — title, summary and tags for one piece of note content.
How:   Thin handler: resolves the caller from the bearer token, then hands the
       raw JSON body to AnalysisService.
Who:   Called by the mobile app right after a note is created or edited.

Request Flow:
    1. get_caller_id: Authorization header → Supabase → caller id (401 on failure)
    2. AnalysisService.analyze: validate (400) → rate limit (429) → AI / local
    3. 200 {success: true, data: {title, summary, tags}, timestamp}

OPTIONS /api/analyze always answers 200 "ok" so that web clients' preflight
requests succeed even without an Origin header.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Request
from fastapi.responses import PlainTextResponse

from notewise.exceptions import AuthenticationError
from notewise.schemas.analysis import AnalysisResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Analysis"])


def bearer_token(authorization: Optional[str]) -> str:
    """Extracts the token from `Bearer <token>`; raises AuthenticationError otherwise."""
    if not authorization:
        raise AuthenticationError("Missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid authorization header")
    return token.strip()


async def get_caller_id(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> str:
    """Route dependency: the authenticated user id behind the bearer token."""
    token = bearer_token(authorization)
    return await request.app.state.auth_verifier.verify(token)


@router.options("/analyze", include_in_schema=False)
async def analyze_preflight() -> PlainTextResponse:
    return PlainTextResponse("ok")


@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    responses={
        400: {"description": "Invalid request body", "model": ErrorResponse},
        401: {"description": "Missing or invalid bearer token", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Analyze note content",
    description=(
        "Generate a title, a 2-4 sentence summary and up to 10 tags for text, URL, "
        "file or image content. Falls back to local heuristics when the AI provider "
        "is unavailable."
    ),
)
async def analyze_content(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    caller_id: str = Depends(get_caller_id),
) -> AnalysisResponse:
    result = await request.app.state.analysis_service.analyze(caller_id, payload)
    return AnalysisResponse(data=result)
