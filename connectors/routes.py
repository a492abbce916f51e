"""
Garmin connector routes — initiate, callback, exchange, disconnect, status.

Route prefix: /api/v1/garmin
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session, get_current_user_id
from connectors.flow import LinkFlow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["garmin"])


def get_link_flow(request: Request) -> LinkFlow:
    return request.app.state.link_flow


# ── Request / response schemas ─────────────────────────────────────────


class InitiateResponse(BaseModel):
    authUrl: str
    codeVerifier: str
    state: str


class ExchangeRequest(BaseModel):
    code: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    code_verifier: Optional[str] = None
    local_user_id: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True


# ── Routes ─────────────────────────────────────────────────────────────


@router.post("/oauth/initiate", response_model=InitiateResponse)
async def initiate(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    flow: LinkFlow = Depends(get_link_flow),
) -> Dict[str, str]:
    """
    Start linking: returns the Garmin authorization URL.

    ``codeVerifier`` is returned for clients that still keep it; the
    server holds its own copy keyed by ``state``.
    """
    started = await flow.initiate(session, user_id)
    return {
        "authUrl": started.auth_url,
        "codeVerifier": started.code_verifier,
        "state": started.state,
    }


@router.get("/oauth/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    flow: LinkFlow = Depends(get_link_flow),
) -> RedirectResponse:
    """Garmin redirects here after consent; forward to the client exchange page."""
    return RedirectResponse(flow.callback_redirect(code, state, error), status_code=302)


@router.post("/oauth/exchange", response_model=SuccessResponse)
async def exchange(
    req: ExchangeRequest,
    session: AsyncSession = Depends(db_session),
    flow: LinkFlow = Depends(get_link_flow),
) -> Dict[str, Any]:
    await flow.exchange(
        session,
        code=req.code,
        state=req.state,
        code_verifier=req.code_verifier,
        local_user_id=req.local_user_id,
    )
    return {"success": True}


@router.post("/oauth/disconnect", response_model=SuccessResponse)
async def disconnect(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    flow: LinkFlow = Depends(get_link_flow),
) -> Dict[str, Any]:
    """Deregister at Garmin (best effort) and delete the local link."""
    await flow.disconnect(session, user_id)
    return {"success": True}


@router.get("/connection")
async def connection_status(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    flow: LinkFlow = Depends(get_link_flow),
) -> Dict[str, Any]:
    """Whether the caller has a linked Garmin account (no tokens exposed)."""
    return await flow.status(session, user_id)
