import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import Settings, get_settings
from ...constants import ResponseStatus, SurveyStatus
from ...crud import crud_response, crud_stats, crud_survey
from ...database import get_db_session
from ...schemas import (
    ResponsePage,
    SurveyCreate,
    SurveyDeleteResponse,
    SurveyDetail,
    SurveyPage,
    SurveyRead,
    SurveyStatsResponse,
    SurveyStatusUpdate,
    SurveyUpdate,
)
from ...tokens import SurveyTokenCodec
from ..deps import get_token_codec, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_admin_token)])


async def _get_survey_or_404(db: AsyncSession, survey_id: str):
    db_survey = await crud_survey.get_survey_by_survey_id(db, survey_id)
    if not db_survey:
        raise HTTPException(status_code=404, detail="Survey not found")
    return db_survey


@router.post("", response_model=SurveyRead, status_code=201)
async def create_survey_item(
    survey_in: SurveyCreate,
    db: AsyncSession = Depends(get_db_session),
    codec: SurveyTokenCodec = Depends(get_token_codec),
    settings: Settings = Depends(get_settings),
):
    return await crud_survey.create_survey(db, survey_in, codec, settings.base_url)


async def _with_stats(db: AsyncSession, db_survey) -> SurveyDetail:
    survey = SurveyRead.model_validate(db_survey)
    stats = await crud_stats.get_breakdown(db, survey.survey_id)
    return SurveyDetail(**survey.model_dump(), stats=stats)


@router.get("", response_model=SurveyPage)
async def read_survey_list(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[SurveyStatus] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db_session),
):
    db_surveys, total = await crud_survey.list_surveys(
        db, page=page, limit=limit, status=status, search=search
    )
    return SurveyPage(
        surveys=[await _with_stats(db, s) for s in db_surveys],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )


@router.get("/{survey_id}", response_model=SurveyDetail)
async def read_survey_item(survey_id: str, db: AsyncSession = Depends(get_db_session)):
    db_survey = await _get_survey_or_404(db, survey_id)
    return await _with_stats(db, db_survey)


@router.put("/{survey_id}", response_model=SurveyRead)
async def update_survey_item(
    survey_id: str,
    survey_in: SurveyUpdate,
    db: AsyncSession = Depends(get_db_session),
    codec: SurveyTokenCodec = Depends(get_token_codec),
    settings: Settings = Depends(get_settings),
):
    db_survey = await crud_survey.update_survey(
        db, survey_id, survey_in, codec, settings.base_url
    )
    if not db_survey:
        raise HTTPException(status_code=404, detail="Survey not found")
    return db_survey


@router.get("/{survey_id}/responses", response_model=ResponsePage)
async def read_survey_responses(
    survey_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    vendor_id: Optional[str] = None,
    country: Optional[str] = None,
    status: Optional[ResponseStatus] = None,
    db: AsyncSession = Depends(get_db_session),
):
    await _get_survey_or_404(db, survey_id)
    return await crud_response.list_responses(
        db,
        survey_id,
        page=page,
        limit=limit,
        vendor_id=vendor_id,
        country=country,
        status=status,
    )


@router.get("/{survey_id}/stats", response_model=SurveyStatsResponse)
async def read_survey_stats(survey_id: str, db: AsyncSession = Depends(get_db_session)):
    await _get_survey_or_404(db, survey_id)
    return SurveyStatsResponse(
        survey_id=survey_id,
        breakdown=await crud_stats.get_breakdown(db, survey_id),
        status_counts=await crud_response.count_responses_by_status(db, survey_id),
    )


@router.patch("/{survey_id}/status", response_model=SurveyRead)
async def update_survey_status(
    survey_id: str,
    status_in: SurveyStatusUpdate,
    db: AsyncSession = Depends(get_db_session),
):
    db_survey = await crud_survey.change_status(db, survey_id, status_in.status)
    if not db_survey:
        raise HTTPException(status_code=404, detail="Survey not found")
    logger.info(f"Survey {survey_id} status changed to {status_in.status.value}")
    return db_survey


@router.delete("/{survey_id}", response_model=SurveyDeleteResponse)
async def delete_survey_item(survey_id: str, db: AsyncSession = Depends(get_db_session)):
    if not await crud_survey.delete_survey(db, survey_id):
        raise HTTPException(status_code=404, detail="Survey not found")
    return SurveyDeleteResponse(survey_id=survey_id)
