from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .constants import ResponseStatus, SurveyStatus
from .database import Base

# Stored in survey_stats.country_key / vendor_key for the overall and country rows
ALL_KEY = ""

# Named so integrity errors from the ledger insert can be told apart
UNIQUE_START_CONSTRAINT = "uq_survey_responses_survey_uid"


class Survey(Base):
    __tablename__ = "surveys"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    survey_id = Column(String(32), unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    ps_code = Column(Integer, unique=True, index=True, nullable=False)
    status = Column(String(16), nullable=False, default=SurveyStatus.LP.value, index=True)
    total_completes = Column(Integer, nullable=False, default=0, server_default="0")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), server_default=func.now()
    )

    countries = relationship(
        "SurveyCountry",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="SurveyCountry.id",
    )


class SurveyCountry(Base):
    __tablename__ = "survey_countries"

    id = Column(Integer, primary_key=True, index=True)
    survey_pk = Column(Integer, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    country = Column(String(8), nullable=False)
    target_completes = Column(Integer, nullable=True)
    live_url = Column(String, nullable=True)
    test_url = Column(String, nullable=True)

    survey = relationship("Survey", back_populates="countries")
    vendors = relationship(
        "SurveyVendor",
        back_populates="country_block",
        cascade="all, delete-orphan",
        order_by="SurveyVendor.id",
    )


class SurveyVendor(Base):
    __tablename__ = "survey_vendors"

    id = Column(Integer, primary_key=True, index=True)
    country_pk = Column(
        Integer, ForeignKey("survey_countries.id", ondelete="CASCADE"), nullable=False
    )
    vendor_id = Column(String, nullable=False)
    vendor_name = Column(String, nullable=False)
    allocation = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    # Per-outcome return URLs on the vendor's side
    complete_redirect = Column(String, nullable=True)
    terminate_redirect = Column(String, nullable=True)
    quota_full_redirect = Column(String, nullable=True)
    security_redirect = Column(String, nullable=True)

    start_url = Column(String, nullable=True)

    country_block = relationship("SurveyCountry", back_populates="vendors")


class SurveyResponse(Base):
    __tablename__ = "survey_responses"
    __table_args__ = (
        # One response per respondent per survey; this is what rejects a racing second start
        UniqueConstraint("survey_id", "uid", name=UNIQUE_START_CONSTRAINT),
        Index("ix_survey_responses_survey_vendor_country", "survey_id", "vendor_id", "country"),
        Index("ix_survey_responses_survey_status", "survey_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(
        String(32), ForeignKey("surveys.survey_id", ondelete="CASCADE"), nullable=False
    )
    ps_code = Column(Integer, nullable=False, index=True)
    uid = Column(String, nullable=False, index=True)
    vendor_id = Column(String, nullable=False)
    vendor_name = Column(String, nullable=False)
    country = Column(String(8), nullable=False)
    status = Column(String(16), nullable=False, default=ResponseStatus.INITIATED.value)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), server_default=func.now()
    )


class SurveyStats(Base):
    __tablename__ = "survey_stats"
    __table_args__ = (
        UniqueConstraint(
            "survey_id", "country_key", "vendor_key", name="uq_survey_stats_scope"
        ),
        CheckConstraint(
            "vendor_key = '' OR country_key <> ''",
            name="ck_survey_stats_vendor_requires_country",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(String(32), nullable=False, index=True)
    country_key = Column(String(8), nullable=False, default=ALL_KEY, server_default="")
    vendor_key = Column(String, nullable=False, default=ALL_KEY, server_default="")

    initiated = Column(Integer, nullable=False, default=0, server_default="0")
    completed = Column(Integer, nullable=False, default=0, server_default="0")
    terminated = Column(Integer, nullable=False, default=0, server_default="0")
    quota_full = Column(Integer, nullable=False, default=0, server_default="0")
    security = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_updated = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def country(self):
        return self.country_key or None

    @property
    def vendor_id(self):
        return self.vendor_key or None
