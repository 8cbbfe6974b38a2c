# Public respondent endpoints: vendor entry link and survey platform callback.
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ... import flows
from ...database import get_db_session
from ...errors import RedirectFlowError
from ...pages import render_callback_page, render_error_page
from ...tokens import SurveyTokenCodec
from ..deps import get_token_codec

logger = logging.getLogger(__name__)

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def _error_response(exc: Exception) -> HTMLResponse:
    if isinstance(exc, RedirectFlowError):
        return HTMLResponse(render_error_page(exc.message), status_code=exc.status_code)
    return HTMLResponse(render_error_page("An error occurred"), status_code=400)


@router.get("/start")
async def survey_start(
    request: Request,
    token: Optional[str] = None,
    uid: Optional[str] = None,
    db: AsyncSession = Depends(get_db_session),
    codec: SurveyTokenCodec = Depends(get_token_codec),
):
    try:
        result = await flows.handle_survey_start(
            db,
            codec,
            token,
            uid,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except RedirectFlowError as e:
        logger.info(f"Survey start rejected (uid={uid}): {e.message}")
        return _error_response(e)
    except Exception as e:
        logger.exception(f"Unexpected error on survey start (uid={uid})")
        await db.rollback()
        return _error_response(e)

    return RedirectResponse(result.survey_url, status_code=302)


@router.get("/callback/{survey_id}", response_class=HTMLResponse)
async def survey_callback(
    survey_id: str,
    status: Optional[str] = None,
    uid: Optional[str] = None,
    db: AsyncSession = Depends(get_db_session),
):
    try:
        result = await flows.handle_survey_callback(db, survey_id, uid, status)
    except RedirectFlowError as e:
        logger.info(f"Survey callback rejected ({survey_id}/{uid}): {e.message}")
        return _error_response(e)
    except Exception as e:
        logger.exception(f"Unexpected error on survey callback ({survey_id}/{uid})")
        await db.rollback()
        return _error_response(e)

    return HTMLResponse(render_callback_page(result.message, result.redirect_url))
