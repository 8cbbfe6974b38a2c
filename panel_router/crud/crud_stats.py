"""
Running counters per survey, kept at three levels in one table:

- overall:  (survey_id, country=None, vendor_id=None)
- country:  (survey_id, country="IN", vendor_id=None)
- vendor:   (survey_id, country="IN", vendor_id="V001")

Each increment is a single atomic statement committed on its own. The three
levels of one event are independent increments; if one fails the others
still land and the levels can drift apart.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..constants import StatsField
from ..models import ALL_KEY, SurveyStats
from ..schemas import StatsBreakdown, StatsRowRead, StatsUpdateResult

logger = logging.getLogger(__name__)

# Attempts for the update-then-insert loop on dialects without native upsert
MAX_UPSERT_ATTEMPTS = 5


def _upsert_statement(dialect_name: str, key: dict, field: str, now: datetime):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None

    column = SurveyStats.__table__.c[field]
    stmt = insert(SurveyStats.__table__).values(
        **key, **{field: 1}, created_at=now, last_updated=now
    )
    return stmt.on_conflict_do_update(
        index_elements=["survey_id", "country_key", "vendor_key"],
        set_={field: column + 1, "last_updated": now},
    )


async def _compare_and_swap(db: AsyncSession, key: dict, field: str, now: datetime):
    column = SurveyStats.__table__.c[field]
    for attempt in range(1, MAX_UPSERT_ATTEMPTS + 1):
        result = await db.execute(
            update(SurveyStats)
            .where(*(SurveyStats.__table__.c[k] == v for k, v in key.items()))
            .values({field: column + 1, "last_updated": now})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            await db.commit()
            return
        try:
            await db.execute(
                SurveyStats.__table__.insert().values(
                    **key, **{field: 1}, created_at=now, last_updated=now
                )
            )
            await db.commit()
            return
        except IntegrityError:
            # Another writer created the row between our UPDATE and INSERT
            await db.rollback()
            logger.debug(f"Stats row {key} created concurrently, retry {attempt}")
    raise RuntimeError(f"Could not upsert stats row {key} after {MAX_UPSERT_ATTEMPTS} attempts")


async def increment(
    db: AsyncSession,
    survey_id: str,
    country: Optional[str],
    vendor_id: Optional[str],
    field: StatsField,
) -> None:
    """Adds 1 to ``field`` on one stats row, creating the row if needed."""
    if vendor_id and not country:
        raise ValueError("vendor-level stats require a country")

    field = StatsField(field).value
    key = {
        "survey_id": survey_id,
        "country_key": country or ALL_KEY,
        "vendor_key": vendor_id or ALL_KEY,
    }
    now = datetime.now(timezone.utc)

    stmt = _upsert_statement(db.get_bind().dialect.name, key, field, now)
    if stmt is None:
        await _compare_and_swap(db, key, field, now)
        return
    await db.execute(stmt)
    await db.commit()


async def update_all_levels(
    db: AsyncSession,
    survey_id: str,
    country: Optional[str],
    vendor_id: Optional[str],
    field: StatsField,
) -> StatsUpdateResult:
    """Increments the overall, country and vendor rows independently."""
    field = StatsField(field)
    tiers = [("overall", None, None)]
    if country:
        tiers.append(("country", country, None))
        if vendor_id:
            tiers.append(("vendor", country, vendor_id))

    errors = []
    for tier, tier_country, tier_vendor in tiers:
        try:
            await increment(db, survey_id, tier_country, tier_vendor, field)
        except Exception as e:
            # Recorded per tier; the remaining tiers and the caller still proceed
            await db.rollback()
            error = f"Failed to update {tier} stats: {e}"
            logger.error(
                f"{error} (survey={survey_id}, country={tier_country}, "
                f"vendor={tier_vendor}, field={field.value})"
            )
            errors.append(error)
        else:
            logger.debug(
                f"Updated {tier} stats for survey {survey_id}: "
                f"country={tier_country}, vendor={tier_vendor}, field={field.value}"
            )

    return StatsUpdateResult(success=not errors, errors=errors)


async def get_stats_rows(db: AsyncSession, survey_id: str):
    result = await db.execute(
        select(SurveyStats)
        .where(SurveyStats.survey_id == survey_id)
        .order_by(SurveyStats.country_key, SurveyStats.vendor_key)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def get_breakdown(db: AsyncSession, survey_id: str) -> StatsBreakdown:
    rows = [StatsRowRead.model_validate(row) for row in await get_stats_rows(db, survey_id)]

    overall = next((r for r in rows if r.country is None and r.vendor_id is None), None)
    countries = [r for r in rows if r.country is not None and r.vendor_id is None]
    vendors = [r for r in rows if r.country is not None and r.vendor_id is not None]
    return StatsBreakdown(overall=overall, countries=countries, vendors=vendors)


async def delete_all(db: AsyncSession, survey_id: str) -> int:
    result = await db.execute(delete(SurveyStats).where(SurveyStats.survey_id == survey_id))
    await db.commit()
    return result.rowcount
