import logging
import math
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..constants import ResponseStatus
from ..errors import DuplicateStartError
from ..models import UNIQUE_START_CONSTRAINT, SurveyResponse
from ..schemas import ResponsePage, ResponseRead, StatusCounts

logger = logging.getLogger(__name__)

_COUNT_FIELDS = {
    ResponseStatus.INITIATED.value: "initiated",
    ResponseStatus.COMPLETED.value: "completed",
    ResponseStatus.TERMINATED.value: "terminated",
    ResponseStatus.QUOTA.value: "quota_full",
    ResponseStatus.QUOTA_FULL.value: "quota_full",
    ResponseStatus.SECURITY.value: "security",
}


# How each backend names the violated (survey_id, uid) constraint in its error text
_DUPLICATE_START_MARKERS = (
    UNIQUE_START_CONSTRAINT,
    "survey_responses.survey_id, survey_responses.uid",
)


def _is_duplicate_start(error: IntegrityError) -> bool:
    message = str(error.orig)
    return any(marker in message for marker in _DUPLICATE_START_MARKERS)


async def create_response(
    db: AsyncSession,
    survey_id: str,
    uid: str,
    ps_code: int,
    vendor_id: str,
    vendor_name: str,
    country: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> SurveyResponse:
    db_response = SurveyResponse(
        survey_id=survey_id,
        uid=uid,
        ps_code=ps_code,
        vendor_id=vendor_id,
        vendor_name=vendor_name,
        country=country,
        status=ResponseStatus.INITIATED.value,
        ip_address=ip_address,
        user_agent=user_agent,
        started_at=datetime.now(timezone.utc),
    )
    db.add(db_response)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if not _is_duplicate_start(e):
            raise
        # The (survey_id, uid) unique constraint decides concurrent starts
        logger.info(f"Duplicate start rejected for survey {survey_id}, uid {uid}")
        raise DuplicateStartError()
    return db_response


async def get_response(
    db: AsyncSession, uid: str, survey_id: str
) -> Optional[SurveyResponse]:
    result = await db.execute(
        select(SurveyResponse)
        .where(SurveyResponse.survey_id == survey_id, SurveyResponse.uid == uid)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def update_response_status(
    db: AsyncSession,
    uid: str,
    survey_id: str,
    status: ResponseStatus,
    completed_at: Optional[datetime] = None,
) -> Optional[SurveyResponse]:
    values = {"status": ResponseStatus(status).value}
    if completed_at is not None:
        values["completed_at"] = completed_at

    result = await db.execute(
        update(SurveyResponse)
        .where(SurveyResponse.survey_id == survey_id, SurveyResponse.uid == uid)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        await db.rollback()
        return None
    await db.commit()
    return await get_response(db, uid, survey_id)


async def list_responses(
    db: AsyncSession,
    survey_id: str,
    page: int = 1,
    limit: int = 10,
    vendor_id: Optional[str] = None,
    country: Optional[str] = None,
    status: Optional[ResponseStatus] = None,
) -> ResponsePage:
    page = max(page, 1)
    limit = max(limit, 1)

    filters = [SurveyResponse.survey_id == survey_id]
    if vendor_id:
        filters.append(SurveyResponse.vendor_id == vendor_id)
    if country:
        filters.append(SurveyResponse.country == country)
    if status:
        filters.append(SurveyResponse.status == ResponseStatus(status).value)

    total = (
        await db.execute(select(func.count(SurveyResponse.id)).where(*filters))
    ).scalar_one()
    result = await db.execute(
        select(SurveyResponse)
        .where(*filters)
        .order_by(SurveyResponse.started_at.desc(), SurveyResponse.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    return ResponsePage(
        responses=[ResponseRead.model_validate(r) for r in result.scalars().all()],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )


async def count_responses_by_status(db: AsyncSession, survey_id: str) -> StatusCounts:
    result = await db.execute(
        select(SurveyResponse.status, func.count(SurveyResponse.id))
        .where(SurveyResponse.survey_id == survey_id)
        .group_by(SurveyResponse.status)
    )

    counts = StatusCounts()
    for status, count in result.all():
        field = _COUNT_FIELDS.get(status)
        if field is None:
            logger.warning(f"Unknown response status {status!r} in survey {survey_id}")
            continue
        setattr(counts, field, getattr(counts, field) + count)
    return counts


async def delete_responses(db: AsyncSession, survey_id: str) -> int:
    result = await db.execute(
        delete(SurveyResponse).where(SurveyResponse.survey_id == survey_id)
    )
    await db.commit()
    return result.rowcount
