"""Start and callback flows against a seeded survey."""

import pytest
from sqlalchemy.exc import OperationalError

from panel_router import flows
from panel_router.constants import ResponseStatus, SurveyStatus
from panel_router.crud import crud_response, crud_stats, crud_survey
from panel_router.errors import (
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
from panel_router.tokens import generate_legacy_token

from conftest import COMPLETE_URL, LEGACY_SECRET, LIVE_URL, QUOTA_URL, TERMINATE_URL, TEST_URL

TIERS = [(None, None), ("IN", None), ("IN", "V001")]


async def _stats_by_tier(db, survey_id):
    rows = await crud_stats.get_stats_rows(db, survey_id)
    return {(r.country, r.vendor_id): r for r in rows}


async def _start(db, codec, survey, uid="U1", vendor_id="V001", country="IN"):
    token = codec.encode(survey.survey_id, vendor_id, country)
    return await flows.handle_survey_start(db, codec, token, uid)


@pytest.mark.asyncio
async def test_start_and_complete_round_trip(db, codec, survey):
    started = await _start(db, codec, survey)

    assert started.survey_url == LIVE_URL
    assert (started.survey_id, started.uid, started.vendor_id, started.country) == (
        survey.survey_id,
        "U1",
        "V001",
        "IN",
    )
    record = await crud_response.get_response(db, "U1", survey.survey_id)
    assert record.status == ResponseStatus.INITIATED.value
    assert record.vendor_name == "Acme Panels"
    stats = await _stats_by_tier(db, survey.survey_id)
    assert set(stats) == set(TIERS)
    assert all(stats[tier].initiated == 1 for tier in TIERS)

    with pytest.raises(DuplicateStartError):
        await _start(db, codec, survey)

    done = await flows.handle_survey_callback(db, survey.survey_id, "U1", "COMPLETED")

    assert done.status == ResponseStatus.COMPLETED
    assert done.redirect_url == COMPLETE_URL
    assert done.message == "Survey completed successfully!"
    record = await crud_response.get_response(db, "U1", survey.survey_id)
    assert record.status == ResponseStatus.COMPLETED.value
    assert record.completed_at is not None
    stats = await _stats_by_tier(db, survey.survey_id)
    assert all(stats[tier].completed == 1 for tier in TIERS)
    assert all(stats[tier].initiated == 1 for tier in TIERS)
    reloaded = await crud_survey.get_survey_by_survey_id(db, survey.survey_id)
    assert reloaded.total_completes == 1


@pytest.mark.asyncio
async def test_start_falls_back_to_test_url(db, codec, survey):
    started = await _start(db, codec, survey, vendor_id="V003", country="US")

    assert started.survey_url == TEST_URL


@pytest.mark.asyncio
async def test_start_without_any_url_is_misconfigured(db, codec, survey):
    with pytest.raises(MisconfiguredURLError):
        await _start(db, codec, survey, vendor_id="V004", country="DE")

    assert await crud_response.get_response(db, "U1", survey.survey_id) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token, uid",
    [(None, "U1"), ("", "U1"), ("psv1.a.b.c", None), ("psv1.a.b.c", "")],
)
async def test_start_requires_token_and_uid(db, codec, survey, token, uid):
    with pytest.raises(BadInputError):
        await flows.handle_survey_start(db, codec, token, uid)


@pytest.mark.asyncio
async def test_start_with_invalid_token(db, codec, survey):
    with pytest.raises(InvalidLinkError) as excinfo:
        await flows.handle_survey_start(db, codec, "psv1.not.a.token", "U1")

    assert excinfo.value.message == "Invalid or expired survey link"


@pytest.mark.asyncio
async def test_start_for_unknown_survey(db, codec, survey):
    token = codec.encode("doesnotexist", "V001", "IN")

    with pytest.raises(NotFoundError) as excinfo:
        await flows.handle_survey_start(db, codec, token, "U1")

    assert excinfo.value.message == "Survey not found"


@pytest.mark.asyncio
async def test_start_for_unknown_country_or_vendor(db, codec, survey):
    with pytest.raises(NotFoundError, match="Country not found"):
        await _start(db, codec, survey, country="FR")
    with pytest.raises(NotFoundError, match="Vendor not found"):
        await _start(db, codec, survey, vendor_id="V999")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [(SurveyStatus.CLOSED, SurveyClosedError), (SurveyStatus.PAUSE, SurveyPausedError)],
)
async def test_start_blocked_by_survey_status(db, codec, survey, status, error):
    await crud_survey.change_status(db, survey.survey_id, status)

    with pytest.raises(error):
        await _start(db, codec, survey)

    assert await crud_stats.get_stats_rows(db, survey.survey_id) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [SurveyStatus.LP, SurveyStatus.INVOICED, SurveyStatus.PAID])
async def test_start_allowed_in_other_statuses(db, codec, survey, status):
    await crud_survey.change_status(db, survey.survey_id, status)

    started = await _start(db, codec, survey)

    assert started.survey_url == LIVE_URL


@pytest.mark.asyncio
async def test_start_with_inactive_vendor(db, codec, survey):
    with pytest.raises(VendorInactiveError):
        await _start(db, codec, survey, vendor_id="V002")


@pytest.mark.asyncio
async def test_start_with_legacy_token(db, codec, survey):
    token = generate_legacy_token(LEGACY_SECRET, survey.survey_id, "V001", "IN")

    started = await flows.handle_survey_start(db, codec, token, "legacy-uid")

    assert started.survey_url == LIVE_URL
    assert await crud_response.get_response(db, "legacy-uid", survey.survey_id) is not None


@pytest.mark.asyncio
async def test_start_records_client_details(db, codec, survey):
    token = codec.encode(survey.survey_id, "V001", "IN")

    await flows.handle_survey_start(
        db, codec, token, "U1", ip_address="203.0.113.7", user_agent="Mozilla/5.0"
    )

    record = await crud_response.get_response(db, "U1", survey.survey_id)
    assert record.ip_address == "203.0.113.7"
    assert record.user_agent == "Mozilla/5.0"


@pytest.mark.asyncio
async def test_start_survives_stats_failure(db, codec, survey, monkeypatch):
    async def broken_increment(*args, **kwargs):
        raise OperationalError("INSERT INTO survey_stats", {}, Exception("database is locked"))

    monkeypatch.setattr(crud_stats, "increment", broken_increment)
    # Failed tiers roll back the session, which expires the loaded survey
    survey_id = survey.survey_id

    started = await _start(db, codec, survey)

    assert started.survey_url == LIVE_URL
    assert await crud_response.get_response(db, "U1", survey_id) is not None
    assert await crud_stats.get_stats_rows(db, survey_id) == []


@pytest.mark.asyncio
async def test_start_survives_exhausted_stats_fallback(db, codec, survey, monkeypatch):
    monkeypatch.setattr(crud_stats, "_upsert_statement", lambda *args: None)
    monkeypatch.setattr(crud_stats, "MAX_UPSERT_ATTEMPTS", 0)
    survey_id = survey.survey_id

    started = await _start(db, codec, survey)

    assert started.survey_url == LIVE_URL
    record = await crud_response.get_response(db, "U1", survey_id)
    assert record.status == ResponseStatus.INITIATED.value
    assert await crud_stats.get_stats_rows(db, survey_id) == []


@pytest.mark.asyncio
async def test_callback_survives_stats_failure(db, codec, survey, monkeypatch):
    survey_id = survey.survey_id
    await _start(db, codec, survey)

    async def broken_increment(*args, **kwargs):
        raise OperationalError("UPDATE survey_stats", {}, Exception("database is locked"))

    monkeypatch.setattr(crud_stats, "increment", broken_increment)

    result = await flows.handle_survey_callback(db, survey_id, "U1", "COMPLETED")

    assert result.status == ResponseStatus.COMPLETED
    assert result.redirect_url == COMPLETE_URL
    record = await crud_response.get_response(db, "U1", survey_id)
    assert record.status == ResponseStatus.COMPLETED.value
    assert record.completed_at is not None
    stats = await _stats_by_tier(db, survey_id)
    assert all(stats[tier].completed == 0 for tier in TIERS)
    reloaded = await crud_survey.get_survey_by_survey_id(db, survey_id)
    assert reloaded.total_completes == 1


@pytest.mark.asyncio
async def test_quota_callback_is_stored_as_quota_full(db, codec, survey):
    await _start(db, codec, survey)

    result = await flows.handle_survey_callback(db, survey.survey_id, "U1", "QUOTA")

    assert result.status == ResponseStatus.QUOTA_FULL
    assert result.redirect_url == QUOTA_URL
    assert result.message == "Survey quota is full."
    record = await crud_response.get_response(db, "U1", survey.survey_id)
    assert record.status == ResponseStatus.QUOTA_FULL.value
    stats = await _stats_by_tier(db, survey.survey_id)
    assert all(stats[tier].quota_full == 1 for tier in TIERS)
    reloaded = await crud_survey.get_survey_by_survey_id(db, survey.survey_id)
    assert reloaded.total_completes == 0


@pytest.mark.asyncio
async def test_terminate_callback(db, codec, survey):
    await _start(db, codec, survey)

    result = await flows.handle_survey_callback(db, survey.survey_id, "U1", "TERMINATED")

    assert result.redirect_url == TERMINATE_URL
    stats = await _stats_by_tier(db, survey.survey_id)
    assert stats[("IN", "V001")].terminated == 1
    assert stats[("IN", "V001")].completed == 0


@pytest.mark.asyncio
async def test_callback_without_vendor_redirect(db, codec, survey):
    await _start(db, codec, survey, uid="U9", vendor_id="V003", country="US")

    result = await flows.handle_survey_callback(db, survey.survey_id, "U9", "SECURITY")

    assert result.status == ResponseStatus.SECURITY
    assert result.redirect_url == ""
    assert result.message == "Security check failed."


@pytest.mark.asyncio
async def test_callback_for_uid_that_never_started(db, survey):
    with pytest.raises(NotStartedError):
        await flows.handle_survey_callback(db, survey.survey_id, "ghost", "COMPLETED")


@pytest.mark.asyncio
async def test_callback_for_unknown_survey(db, survey):
    with pytest.raises(NotFoundError):
        await flows.handle_survey_callback(db, "doesnotexist", "U1", "COMPLETED")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["INITIATED", "completed", "DONE"])
async def test_callback_rejects_unknown_status(db, codec, survey, status):
    await _start(db, codec, survey)

    with pytest.raises(BadInputError, match="Invalid status"):
        await flows.handle_survey_callback(db, survey.survey_id, "U1", status)

    record = await crud_response.get_response(db, "U1", survey.survey_id)
    assert record.status == ResponseStatus.INITIATED.value


@pytest.mark.asyncio
@pytest.mark.parametrize("uid, status", [(None, "COMPLETED"), ("U1", None), ("", "")])
async def test_callback_requires_uid_and_status(db, survey, uid, status):
    with pytest.raises(BadInputError):
        await flows.handle_survey_callback(db, survey.survey_id, uid, status)

