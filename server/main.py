# server/main.py
from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Any, Callable, List, Optional

import dateparser
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from db.repository import (
    HealthMetricRepository,
    InsightRepository,
    PredictionRepository,
    SymptomRepository,
)
from dss.config import Settings
from dss.errors import NotFoundError, ValidationError
from dss.knowledge_base import KnowledgeBase
from dss.schema import AnalysisResponse, Insight, Prediction, RiskType, to_utc
from dss.service import DecisionSupportService

logger = logging.getLogger(__name__)

settings = Settings.from_env()

app = FastAPI(title="HealthTrack DSS API", version="0.1.0")


def _cors_origins(raw: str | None) -> List[str]:
    """Origins from a comma-separated ``CORS_ORIGINS``; unset or ``*`` allows any origin."""
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return ["*"] if not origins or origins == ["*"] else origins


_CORS_ORIGINS = _cors_origins(os.getenv("CORS_ORIGINS"))
app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
if _CORS_ORIGINS == ["*"]:
    logger.warning("CORS allows any origin; set CORS_ORIGINS to restrict the dashboard hosts")
else:
    logger.info("CORS origins: %s", _CORS_ORIGINS)

# --- Optional bearer token on the /dss routes ---
security = HTTPBearer(auto_error=False)
API_TOKEN = os.getenv("API_TOKEN")


def auth_guard(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Reject DSS requests without the configured ``API_TOKEN``; open when it is unset."""
    if API_TOKEN and (creds is None or creds.credentials != API_TOKEN):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return True

# --- Service wiring ---
_service: DecisionSupportService | None = None

def get_service() -> DecisionSupportService:
    """Build the DSS service on first use; a broken disease catalog fails here."""
    global _service
    if _service is None:
        _service = DecisionSupportService(
            knowledge_base=KnowledgeBase.load(settings.knowledge_base_path),
            symptoms=SymptomRepository(),
            metrics=HealthMetricRepository(),
            insights=InsightRepository(),
            predictions=PredictionRepository(),
            settings=settings,
        )
    return _service

# --- Helpers ---
def _parse_since(since: Optional[str]) -> Optional[datetime]:
    """Lower bound for insight listings: ISO 8601 or e.g. "3 days ago", read as UTC. Bad input is a 400."""
    if not since:
        return None
    dt = dateparser.parse(since, settings={"TIMEZONE": "UTC", "RETURN_AS_TIMEZONE_AWARE": True})
    if dt is None:
        raise HTTPException(status_code=400, detail=f"Cannot parse 'since': {since!r}")
    return to_utc(dt)

async def _call(fn: Callable[..., Any], *args, timeout: Optional[float] = None, **kwargs) -> Any:
    """
    Run a blocking service call in the thread pool and map DSS errors to HTTP.

    With ``timeout`` the whole call fails with 504 when it runs too long; no
    partial result is returned.
    """
    try:
        call = run_in_threadpool(fn, *args, **kwargs)
        if timeout is not None:
            return await asyncio.wait_for(call, timeout=timeout)
        return await call
    except asyncio.TimeoutError as exc:
        logger.error("%s timed out after %ss", fn.__name__, timeout)
        raise HTTPException(status_code=504, detail="Analysis timed out") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("%s failed", fn.__name__)
        raise HTTPException(status_code=500, detail="Internal Server Error") from exc

# --- Routes ---
@app.get("/health")
def health():
    """Liveness check."""
    return {"ok": True}


router = APIRouter(prefix="/dss", tags=["dss"], dependencies=[Depends(auth_guard)])


@router.post("/analyze-symptoms", response_model=AnalysisResponse)
async def api_analyze_symptoms(
    user_id: str = Query(..., description="User identifier"),
    service: DecisionSupportService = Depends(get_service),
):
    """Analyze the user's active symptoms and predict possible conditions."""
    response, insights = await _call(
        service.evaluate_symptoms, user_id, timeout=settings.analysis_timeout_seconds
    )
    await _call(service.store_insights, user_id, insights)
    return response


@router.post("/predict-risks", response_model=List[Prediction])
async def api_predict_risks(
    user_id: str = Query(..., description="User identifier"),
    window_days: Optional[int] = Query(default=None, description="Trailing window in days"),
    service: DecisionSupportService = Depends(get_service),
):
    """Predict cardiovascular, diabetes, hypertension and weight risks."""
    predictions, insights = await _call(
        service.evaluate_risks, user_id, window_days, timeout=settings.analysis_timeout_seconds
    )
    await _call(service.store_predictions, user_id, predictions, insights)
    return predictions


@router.get("/insights", response_model=List[Insight])
async def api_insights(
    user_id: str = Query(..., description="User identifier"),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    since: Optional[str] = Query(default=None, description="ISO 8601 or natural language, UTC assumed"),
    service: DecisionSupportService = Depends(get_service),
):
    """List the user's insights, newest first."""
    dt = _parse_since(since)
    return await _call(service.list_insights, user_id, unread_only=unread_only, since=dt)


@router.get("/insights/unread-count")
async def api_unread_count(
    user_id: str = Query(..., description="User identifier"),
    service: DecisionSupportService = Depends(get_service),
):
    count = await _call(service.unread_insight_count, user_id)
    return {"unread_count": count}


@router.patch("/insights/{insight_id}/read", response_model=Insight)
async def api_mark_insight_read(
    insight_id: str,
    user_id: str = Query(..., description="User identifier"),
    service: DecisionSupportService = Depends(get_service),
):
    return await _call(service.mark_insight_read, user_id, insight_id)


@router.delete("/insights/cleanup")
async def api_cleanup_expired(service: DecisionSupportService = Depends(get_service)):
    """Delete expired insights and predictions of all users."""
    return await _call(service.cleanup_expired)


@router.delete("/insights/{insight_id}", status_code=status.HTTP_204_NO_CONTENT)
async def api_delete_insight(
    insight_id: str,
    user_id: str = Query(..., description="User identifier"),
    service: DecisionSupportService = Depends(get_service),
):
    await _call(service.delete_insight, user_id, insight_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/predictions", response_model=List[Prediction])
async def api_predictions(
    user_id: str = Query(..., description="User identifier"),
    risk_type: Optional[RiskType] = Query(default=None, alias="type"),
    valid_only: bool = Query(default=False, alias="validOnly"),
    service: DecisionSupportService = Depends(get_service),
):
    """List stored predictions, optionally only one risk type or only still-valid ones."""
    return await _call(
        service.list_predictions, user_id, risk_type=risk_type, valid_only=valid_only
    )


@router.delete("/predictions/{prediction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def api_delete_prediction(
    prediction_id: str,
    user_id: str = Query(..., description="User identifier"),
    service: DecisionSupportService = Depends(get_service),
):
    await _call(service.delete_prediction, user_id, prediction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/dashboard")
async def api_dashboard(
    user_id: str = Query(..., description="User identifier"),
    service: DecisionSupportService = Depends(get_service),
):
    """Recent insights, active predictions and the unread count in one call."""
    return await _call(service.dashboard, user_id)


app.include_router(router)
