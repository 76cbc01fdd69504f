import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import sentry_sdk

from app.ai.config import load_ai_config
from app.ai.factory import get_ai_client
from app.api.v1.health import router as health_router
from app.api.v1.public import router as public_router
from app.api.v1.analytics import router as analytics_router
from app.core.cors import cors_options
from app.core.quota_ledger import build_quota_ledger
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.core.config import settings
from app.core.lifespan import lifespan
from app.services.analysis_service import AnalysisOrchestrator

logging.basicConfig(level=settings.log_level, format="%(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="Petrolink Public CV API", version="0.1.0", lifespan=lifespan)

app.add_middleware(CORSMiddleware, **cors_options())
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

_ai_config = load_ai_config()
app.state.quota_ledger = build_quota_ledger(settings)
app.state.analysis_orchestrator = AnalysisOrchestrator(
    get_ai_client(_ai_config),
    timeout_s=_ai_config.timeout_s,
    max_input_chars=_ai_config.max_input_chars,
)

app.include_router(health_router, tags=["Health"])
app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(public_router, prefix="/v1", tags=["Public"])
app.include_router(analytics_router, prefix="/v1", tags=["Analytics"])
