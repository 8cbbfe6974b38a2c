import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..constants import SurveyStatus
from ..models import Survey, SurveyCountry, SurveyVendor
from ..schemas import SurveyCreate, SurveyUpdate
from ..tokens import SurveyTokenCodec
from . import crud_response, crud_stats

logger = logging.getLogger(__name__)

MIN_PS_CODE = 10000
SURVEY_ID_LENGTH = 12
MAX_CREATE_ATTEMPTS = 5
UID_PLACEHOLDER = "[XXXX]"


def build_start_url(base_url: str, token: str) -> str:
    """Vendor entry link; the vendor replaces the uid placeholder per respondent."""
    return f"{base_url.rstrip('/')}/api/v1/surveys/start?token={token}&uid={UID_PLACEHOLDER}"


def _new_survey_id() -> str:
    return uuid.uuid4().hex[:SURVEY_ID_LENGTH]


async def get_next_ps_code(db: AsyncSession) -> int:
    last = (await db.execute(select(func.max(Survey.ps_code)))).scalar_one_or_none()
    if last is None:
        return MIN_PS_CODE
    return max(last + 1, MIN_PS_CODE)


def _build_countries(survey_id: str, survey_in: SurveyCreate, codec, base_url: str):
    countries = []
    for country_in in survey_in.countries:
        vendors = []
        for vendor_in in country_in.vendors:
            token = codec.encode(survey_id, vendor_in.vendor_id, country_in.country)
            vendors.append(
                SurveyVendor(
                    vendor_id=vendor_in.vendor_id,
                    vendor_name=vendor_in.vendor_name,
                    allocation=vendor_in.allocation,
                    is_active=vendor_in.is_active,
                    complete_redirect=vendor_in.redirects.complete_redirect,
                    terminate_redirect=vendor_in.redirects.terminate_redirect,
                    quota_full_redirect=vendor_in.redirects.quota_full_redirect,
                    security_redirect=vendor_in.redirects.security_redirect,
                    start_url=build_start_url(base_url, token),
                )
            )
        countries.append(
            SurveyCountry(
                country=country_in.country,
                target_completes=country_in.target_completes,
                live_url=country_in.live_url,
                test_url=country_in.test_url,
                vendors=vendors,
            )
        )
    return countries


async def create_survey(
    db: AsyncSession,
    survey_in: SurveyCreate,
    codec: SurveyTokenCodec,
    base_url: str,
) -> Survey:
    # ps_code is max + 1; a concurrent create can take the same number first
    for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
        survey_id = _new_survey_id()
        db_survey = Survey(
            survey_id=survey_id,
            name=survey_in.name,
            ps_code=await get_next_ps_code(db),
            status=SurveyStatus(survey_in.status).value,
            total_completes=0,
            notes=survey_in.notes,
            countries=_build_countries(survey_id, survey_in, codec, base_url),
        )
        db.add(db_survey)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(f"ps_code/survey_id collision on create, retry {attempt}")
            continue
        logger.info(f"Survey created: {survey_id} (psCode {db_survey.ps_code})")
        return await get_survey_by_survey_id(db, survey_id)

    raise RuntimeError("Failed to allocate a unique survey id / psCode")


async def get_survey_by_survey_id(db: AsyncSession, survey_id: str) -> Optional[Survey]:
    result = await db.execute(
        select(Survey)
        .where(Survey.survey_id == survey_id)
        .options(selectinload(Survey.countries).selectinload(SurveyCountry.vendors))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_surveys(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    status: Optional[SurveyStatus] = None,
    search: Optional[str] = None,
) -> Tuple[List[Survey], int]:
    """Newest surveys first; ``search`` matches the name or the survey id."""
    page = max(page, 1)
    limit = max(limit, 1)

    filters = []
    if status:
        filters.append(Survey.status == SurveyStatus(status).value)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(Survey.name.ilike(pattern), Survey.survey_id.ilike(pattern)))

    total = (await db.execute(select(func.count(Survey.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(Survey)
        .where(*filters)
        .options(selectinload(Survey.countries).selectinload(SurveyCountry.vendors))
        .order_by(Survey.created_at.desc(), Survey.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all()), total


async def update_survey(
    db: AsyncSession,
    survey_id: str,
    survey_in: SurveyUpdate,
    codec: SurveyTokenCodec,
    base_url: str,
) -> Optional[Survey]:
    db_survey = await get_survey_by_survey_id(db, survey_id)
    if db_survey is None:
        return None

    # psCode and survey_id never change
    if survey_in.name is not None:
        db_survey.name = survey_in.name
    if survey_in.status is not None:
        db_survey.status = SurveyStatus(survey_in.status).value
    if "notes" in survey_in.model_fields_set:
        db_survey.notes = survey_in.notes
    if survey_in.countries is not None:
        # Every vendor gets a freshly issued token and start URL
        db_survey.countries = _build_countries(survey_id, survey_in, codec, base_url)

    await db.commit()
    logger.info(f"Survey updated: {survey_id}")
    return await get_survey_by_survey_id(db, survey_id)


async def increment_completes(db: AsyncSession, survey_id: str) -> None:
    await db.execute(
        update(Survey)
        .where(Survey.survey_id == survey_id)
        .values(total_completes=Survey.total_completes + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def change_status(
    db: AsyncSession, survey_id: str, status: SurveyStatus
) -> Optional[Survey]:
    result = await db.execute(
        update(Survey)
        .where(Survey.survey_id == survey_id)
        .values(status=SurveyStatus(status).value)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        await db.rollback()
        return None
    await db.commit()
    return await get_survey_by_survey_id(db, survey_id)


async def delete_survey(db: AsyncSession, survey_id: str) -> bool:
    db_survey = await get_survey_by_survey_id(db, survey_id)
    if db_survey is None:
        return False

    await crud_stats.delete_all(db, survey_id)
    await crud_response.delete_responses(db, survey_id)

    db_survey = await get_survey_by_survey_id(db, survey_id)
    await db.delete(db_survey)
    await db.commit()
    logger.info(f"Survey {survey_id} deleted with its responses and stats")
    return True
