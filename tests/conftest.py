"""
Pytest configuration for the panel router.

Provides fixtures for:
- Settings and token codec with test secrets
- A throwaway SQLite database per test (aiosqlite, file backed so that
  several sessions can race against each other)
- A seeded survey with countries and vendors covering the redirect cases
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from panel_router import models  # noqa: F401
from panel_router.config import Settings
from panel_router.constants import SurveyStatus
from panel_router.crud import crud_survey
from panel_router.database import Base, build_engine, build_session_factory
from panel_router.schemas import (
    CountryCreate,
    SurveyCreate,
    VendorCreate,
    VendorRedirects,
)
from panel_router.tokens import SurveyTokenCodec

TEST_SECRET = "test-survey-token-secret-0123456789abcdef"
LEGACY_SECRET = "test-legacy-jwt-secret-0123456789abcdef01"
ADMIN_TOKEN = "test-admin-token"

LIVE_URL = "https://panel.example/s1"
TEST_URL = "https://panel.example/test/s1"
COMPLETE_URL = "https://vendor.example/done"
TERMINATE_URL = "https://vendor.example/term"
QUOTA_URL = "https://vendor.example/quota"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        secret=TEST_SECRET,
        legacy_secret=LEGACY_SECRET,
        base_url="http://testserver",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'panel_router_test.db'}",
        admin_token=ADMIN_TOKEN,
        create_tables_on_startup=False,
    )


@pytest.fixture
def codec(test_settings: Settings) -> SurveyTokenCodec:
    return SurveyTokenCodec.from_settings(test_settings)


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(test_settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def survey_in() -> SurveyCreate:
    """
    IN: live URL, active vendor V001 with complete/terminate/quota redirects,
        inactive vendor V002.
    US: test URL only, vendor V003 without redirects.
    DE: no URL configured, vendor V004.
    """
    return SurveyCreate(
        name="Grocery habits 2026",
        status=SurveyStatus.LIVE,
        countries=[
            CountryCreate(
                country="IN",
                live_url=LIVE_URL,
                test_url=TEST_URL,
                vendors=[
                    VendorCreate(
                        vendor_id="V001",
                        vendor_name="Acme Panels",
                        allocation=100,
                        redirects=VendorRedirects(
                            complete_redirect=COMPLETE_URL,
                            terminate_redirect=TERMINATE_URL,
                            quota_full_redirect=QUOTA_URL,
                        ),
                    ),
                    VendorCreate(
                        vendor_id="V002",
                        vendor_name="Dormant Panels",
                        is_active=False,
                    ),
                ],
            ),
            CountryCreate(
                country="US",
                test_url=TEST_URL,
                vendors=[VendorCreate(vendor_id="V003", vendor_name="US Sample")],
            ),
            CountryCreate(
                country="DE",
                vendors=[VendorCreate(vendor_id="V004", vendor_name="DE Sample")],
            ),
        ],
    )


@pytest_asyncio.fixture
async def survey(db: AsyncSession, survey_in: SurveyCreate, codec, test_settings):
    created = await crud_survey.create_survey(db, survey_in, codec, test_settings.base_url)
    # End the read transaction so other sessions can take the SQLite write lock
    await db.commit()
    return created
