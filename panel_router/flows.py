"""
Respondent entry and exit.

``handle_survey_start`` validates a vendor's entry link and records the start;
``handle_survey_callback`` records the outcome reported by the survey platform
and picks the vendor URL to send the respondent back to. Both raise
``RedirectFlowError`` subclasses for anything the respondent should see.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .constants import (
    REDIRECT_ATTRIBUTES,
    ResponseStatus,
    StatsField,
    SurveyStatus,
    normalize_status,
    parse_callback_status,
    stats_field_for,
    status_message,
)
from .crud import crud_response, crud_stats, crud_survey
from .errors import (
    BadInputError,
    DuplicateStartError,
    InvalidLinkError,
    MisconfiguredURLError,
    NotFoundError,
    NotStartedError,
    SurveyClosedError,
    SurveyPausedError,
    VendorInactiveError,
)
from .models import Survey, SurveyCountry, SurveyVendor
from .schemas import SurveyCallbackResult, SurveyStartResult
from .tokens import SurveyTokenCodec

logger = logging.getLogger(__name__)


def find_country(survey: Survey, country: str) -> Optional[SurveyCountry]:
    return next((c for c in survey.countries if c.country == country), None)


def find_vendor(country_block: SurveyCountry, vendor_id: str) -> Optional[SurveyVendor]:
    return next((v for v in country_block.vendors if v.vendor_id == vendor_id), None)


def resolve_redirect_url(vendor: Optional[SurveyVendor], status: ResponseStatus) -> str:
    if vendor is None:
        return ""
    attribute = REDIRECT_ATTRIBUTES.get(normalize_status(status))
    if attribute is None:
        return ""
    return getattr(vendor, attribute) or ""


async def handle_survey_start(
    db: AsyncSession,
    codec: SurveyTokenCodec,
    token: Optional[str],
    uid: Optional[str],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> SurveyStartResult:
    if not token or not uid:
        raise BadInputError("Missing required parameters: token and uid")

    payload = codec.decode(token)
    if payload is None:
        raise InvalidLinkError()
    if not (payload.survey_id and payload.vendor_id and payload.country):
        raise InvalidLinkError("Invalid survey token payload")

    survey = await crud_survey.get_survey_by_survey_id(db, payload.survey_id)
    if survey is None:
        raise NotFoundError("Survey not found")

    if survey.status == SurveyStatus.CLOSED.value:
        raise SurveyClosedError()
    if survey.status == SurveyStatus.PAUSE.value:
        raise SurveyPausedError()

    country = find_country(survey, payload.country)
    if country is None:
        raise NotFoundError("Country not found in survey")
    vendor = find_vendor(country, payload.vendor_id)
    if vendor is None:
        raise NotFoundError("Vendor not found in survey")
    if not vendor.is_active:
        raise VendorInactiveError()

    if await crud_response.get_response(db, uid, survey.survey_id) is not None:
        raise DuplicateStartError()

    survey_url = country.live_url or country.test_url or ""
    if not survey_url:
        raise MisconfiguredURLError()

    result = SurveyStartResult(
        survey_url=survey_url,
        survey_id=survey.survey_id,
        uid=uid,
        vendor_id=vendor.vendor_id,
        country=country.country,
    )
    logger.info(
        f"Survey started: survey={result.survey_id} uid={uid} "
        f"vendor={result.vendor_id} country={result.country}"
    )

    # Raises DuplicateStartError if a concurrent start for this uid won the insert
    await crud_response.create_response(
        db,
        survey_id=result.survey_id,
        uid=uid,
        ps_code=survey.ps_code,
        vendor_id=result.vendor_id,
        vendor_name=vendor.vendor_name,
        country=result.country,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    stats = await crud_stats.update_all_levels(
        db, result.survey_id, result.country, result.vendor_id, StatsField.INITIATED
    )
    if not stats.success:
        logger.warning(f"Some stats updates failed, continuing with redirect: {stats.errors}")

    return result


async def handle_survey_callback(
    db: AsyncSession,
    survey_id: str,
    uid: Optional[str],
    status: Optional[str],
) -> SurveyCallbackResult:
    if not status or not uid:
        raise BadInputError("Missing required parameters: status and uid")
    callback_status = parse_callback_status(status)
    if callback_status is None:
        raise BadInputError("Invalid status")

    survey = await crud_survey.get_survey_by_survey_id(db, survey_id)
    if survey is None:
        raise NotFoundError("Survey not found")

    response = await crud_response.get_response(db, uid, survey_id)
    if response is None:
        raise NotStartedError()

    stored_status = normalize_status(callback_status)
    response_country = response.country
    response_vendor_id = response.vendor_id

    # Resolved before any commit so later rollbacks cannot expire the survey
    country = find_country(survey, response_country)
    vendor = find_vendor(country, response_vendor_id) if country is not None else None
    redirect_url = resolve_redirect_url(vendor, stored_status)

    updated = await crud_response.update_response_status(
        db, uid, survey_id, stored_status, completed_at=datetime.now(timezone.utc)
    )
    if updated is None:
        raise NotStartedError()

    stats = await crud_stats.update_all_levels(
        db, survey_id, response_country, response_vendor_id, stats_field_for(stored_status)
    )
    if not stats.success:
        logger.warning(f"Some stats updates failed for callback {survey_id}/{uid}: {stats.errors}")

    if stored_status == ResponseStatus.COMPLETED:
        await crud_survey.increment_completes(db, survey_id)

    logger.info(
        f"Survey callback: survey={survey_id} uid={uid} status={stored_status.value} "
        f"redirect={'yes' if redirect_url else 'no'}"
    )
    return SurveyCallbackResult(
        status=stored_status,
        message=status_message(stored_status),
        redirect_url=redirect_url,
    )
