"""
Verification endpoints.

GET /auth                              — issue a token, redirect to the provider
GET /callback                          — provider redirect target; serves a page
GET /user-info/{identity_id}           — record lookup (JSON)
GET /api/v1/verification/token         — JSON variant of /auth
GET /api/v1/verification/callback      — JSON variant of /callback

Each rejection reason maps to its own page and status code so users and
operators can tell causes apart. No internal error detail is ever part of
a response; it goes to the log only.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse

from config import AppSettings
from dependencies import get_record_store, get_settings, get_verification_service
from errors import ErrorKind, NotFoundError
from repositories.protocol import VerificationRecordStore
from schemas.dto.responses.common import ErrorResponse
from schemas.dto.responses.verification import (
    TokenIssuanceResponse,
    VerificationRecordResponse,
    VerificationStatusResponse,
)
from services.verification_service import VerificationService
from services.verification_types import VerificationAttempt, VerificationResult
from shared.ip_utils import get_client_ip

router = APIRouter(tags=["verification"])
api_router = APIRouter(prefix="/api/v1/verification", tags=["verification"])

SUCCESS_PAGE = "success.html"

# reason → (page, status code)
REJECTION_PAGES: dict[ErrorKind, tuple[str, int]] = {
    ErrorKind.INVALID_REQUEST: ("error.html", 400),
    ErrorKind.TOKEN_EXPIRED: ("expired_error.html", 400),
    ErrorKind.ORIGIN_BLOCKED: ("vpn_error.html", 403),
    ErrorKind.ORIGIN_ALREADY_VERIFIED: ("ip_used_error.html", 409),
    ErrorKind.PROVIDER_AUTH_FAILED: ("auth_error.html", 502),
    ErrorKind.DEDUP_UNAVAILABLE: ("unavailable_error.html", 503),
    ErrorKind.CONFIGURATION_ERROR: ("config_error.html", 503),
}


def _attempt_from_request(
    request: Request,
    code: Optional[str],
    state: Optional[str],
    settings: AppSettings,
) -> VerificationAttempt:
    return VerificationAttempt(
        token=state,
        code=code,
        origin=get_client_ip(request, settings.verification.trusted_proxies),
        user_agent=request.headers.get("User-Agent"),
    )


def _status_code(result: VerificationResult) -> int:
    if result.verified:
        return 200
    return REJECTION_PAGES.get(result.reason, ("error.html", 400))[1]


@router.get("/auth")
async def start_verification(
    service: VerificationService = Depends(get_verification_service),
) -> RedirectResponse:
    issuance = await service.issue_token()
    return RedirectResponse(issuance.authorize_url, status_code=307)


@router.get("/callback")
async def verification_callback(
    request: Request,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    service: VerificationService = Depends(get_verification_service),
    settings: AppSettings = Depends(get_settings),
) -> FileResponse:
    result = await service.verify(_attempt_from_request(request, code, state, settings))
    if result.verified:
        page = SUCCESS_PAGE
    else:
        page = REJECTION_PAGES.get(result.reason, ("error.html", 400))[0]
    return FileResponse(
        Path(settings.static_dir) / page,
        status_code=_status_code(result),
        media_type="text/html",
    )


@router.get(
    "/user-info/{identity_id}",
    response_model=VerificationRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_user_info(
    identity_id: str,
    records: VerificationRecordStore = Depends(get_record_store),
) -> VerificationRecordResponse:
    record = await records.find_by_id(identity_id)
    if record is None:
        raise NotFoundError("Verification record not found")
    return VerificationRecordResponse.from_record(record)


@api_router.get("/token", response_model=TokenIssuanceResponse)
async def issue_verification_token(
    service: VerificationService = Depends(get_verification_service),
) -> TokenIssuanceResponse:
    issuance = await service.issue_token()
    return TokenIssuanceResponse(
        token=issuance.token,
        authorize_url=issuance.authorize_url,
        expires_in=issuance.expires_in,
    )


@api_router.get("/callback", response_model=VerificationStatusResponse)
async def verification_callback_json(
    request: Request,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    service: VerificationService = Depends(get_verification_service),
    settings: AppSettings = Depends(get_settings),
) -> JSONResponse:
    result = await service.verify(_attempt_from_request(request, code, state, settings))
    body = VerificationStatusResponse(
        status="verified" if result.verified else "rejected",
        reason=None if result.verified else result.reason.value,
    )
    return JSONResponse(
        status_code=_status_code(result),
        content=body.model_dump(exclude_none=True),
    )
