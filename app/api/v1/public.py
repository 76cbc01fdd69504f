import logging

import sentry_sdk
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.quota_ledger import QuotaLedger
from app.core.rate_limit import rate_limit
from app.schemas.analysis import (
    CallToAction,
    PublicAnalyzeRequest,
    PublicAnalyzeResponse,
    PublicErrorResponse,
)
from app.services.analysis_service import AnalysisOrchestrator
from app.services.public_cv_service import analyze_public_cv

logger = logging.getLogger(__name__)

router = APIRouter()


def _cta() -> CallToAction:
    return CallToAction(message=settings.cta_message, url=settings.cta_url)


def _error(status_code: int, error: PublicErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump(mode="json", exclude_none=True))


def get_quota_ledger(request: Request) -> QuotaLedger:
    return request.app.state.quota_ledger


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return request.app.state.analysis_orchestrator


@router.post(
    "/public/analyze/cv-text",
    response_model=PublicAnalyzeResponse,
    responses={400: {"model": PublicErrorResponse}, 429: {"model": PublicErrorResponse}},
)
@rate_limit()
async def public_analyze_cv_text(request: Request, payload: PublicAnalyzeRequest):
    cv_text = payload.cv_text or ""
    if len(cv_text.strip()) < settings.public_min_text_chars:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            PublicErrorResponse(
                code="CV_TEXT_REQUIRED",
                message=f"Debés enviar cv_text (mínimo {settings.public_min_text_chars} caracteres).",
            ),
        )

    try:
        result = await analyze_public_cv(
            cv_text,
            payload.email,
            ledger=get_quota_ledger(request),
            orchestrator=get_orchestrator(request),
            max_free=settings.public_max_free,
        )
    except Exception as exc:
        logger.exception("public_analyze_error")
        sentry_sdk.capture_exception(exc)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            PublicErrorResponse(code="PUBLIC_ANALYZE_ERROR", message="Error procesando el CV."),
        )

    if not result.allowed or result.analysis is None:
        return _error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            PublicErrorResponse(
                code="PUBLIC_LIMIT_REACHED",
                message="Alcanzaste el límite gratuito para este CV.",
                remaining=0,
                cta=_cta(),
            ),
        )

    return PublicAnalyzeResponse(
        cv_hash=result.cv_hash,
        remaining=result.remaining,
        analysis=result.analysis,
        cta=_cta(),
    )
