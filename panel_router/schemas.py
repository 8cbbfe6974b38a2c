from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import ResponseStatus, SurveyStatus


# --- Survey definition (admin API) ---


class VendorRedirects(BaseModel):
    complete_redirect: Optional[str] = None
    terminate_redirect: Optional[str] = None
    quota_full_redirect: Optional[str] = None
    security_redirect: Optional[str] = None


class VendorCreate(BaseModel):
    vendor_id: str = Field(..., min_length=1)
    vendor_name: str = Field(..., min_length=1)
    allocation: int = 0
    is_active: bool = True
    redirects: VendorRedirects = Field(default_factory=VendorRedirects)


class CountryCreate(BaseModel):
    country: str = Field(..., min_length=1, max_length=8)
    target_completes: Optional[int] = None
    live_url: Optional[str] = None
    test_url: Optional[str] = None
    vendors: List[VendorCreate] = Field(default_factory=list)

    @field_validator("vendors")
    @classmethod
    def vendor_ids_unique(cls, vendors: List[VendorCreate]) -> List[VendorCreate]:
        ids = [v.vendor_id for v in vendors]
        if len(ids) != len(set(ids)):
            raise ValueError("vendor_id must be unique within a country")
        return vendors


def _unique_countries(countries: Optional[List[CountryCreate]]) -> Optional[List[CountryCreate]]:
    if countries is None:
        return countries
    codes = [c.country for c in countries]
    if len(codes) != len(set(codes)):
        raise ValueError("country must be unique within a survey")
    return countries


class SurveyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    status: SurveyStatus = SurveyStatus.LP
    notes: Optional[str] = None
    countries: List[CountryCreate] = Field(default_factory=list)

    @field_validator("countries")
    @classmethod
    def countries_unique(cls, countries):
        return _unique_countries(countries)


class SurveyUpdate(BaseModel):
    """Partial update; a given ``countries`` list replaces the whole routing config."""

    name: Optional[str] = Field(None, min_length=1)
    status: Optional[SurveyStatus] = None
    notes: Optional[str] = None
    countries: Optional[List[CountryCreate]] = None

    @field_validator("countries")
    @classmethod
    def countries_unique(cls, countries):
        return _unique_countries(countries)


class SurveyStatusUpdate(BaseModel):
    status: SurveyStatus


class VendorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    vendor_id: str
    vendor_name: str
    allocation: int
    is_active: bool
    complete_redirect: Optional[str] = None
    terminate_redirect: Optional[str] = None
    quota_full_redirect: Optional[str] = None
    security_redirect: Optional[str] = None
    start_url: Optional[str] = None


class CountryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    country: str
    target_completes: Optional[int] = None
    live_url: Optional[str] = None
    test_url: Optional[str] = None
    vendors: List[VendorRead] = []


class SurveyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    survey_id: str
    name: str
    ps_code: int
    status: SurveyStatus
    total_completes: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    countries: List[CountryRead] = []


class SurveyDeleteResponse(BaseModel):
    survey_id: str
    message: str = "Survey deleted successfully"


# --- Response ledger ---


class ResponseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    survey_id: str
    ps_code: int
    uid: str
    vendor_id: str
    vendor_name: str
    country: str
    status: ResponseStatus
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ResponsePage(BaseModel):
    responses: List[ResponseRead]
    total: int
    page: int
    limit: int
    total_pages: int


class StatusCounts(BaseModel):
    initiated: int = 0
    completed: int = 0
    terminated: int = 0
    quota_full: int = 0
    security: int = 0


# --- Stats ---


class StatsRowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    survey_id: str
    country: Optional[str] = None
    vendor_id: Optional[str] = None
    initiated: int = 0
    completed: int = 0
    terminated: int = 0
    quota_full: int = 0
    security: int = 0
    last_updated: Optional[datetime] = None


class StatsBreakdown(BaseModel):
    overall: Optional[StatsRowRead] = None
    countries: List[StatsRowRead] = []
    vendors: List[StatsRowRead] = []


class StatsUpdateResult(BaseModel):
    success: bool
    errors: List[str] = []


class SurveyDetail(SurveyRead):
    stats: StatsBreakdown


class SurveyPage(BaseModel):
    surveys: List[SurveyDetail]
    total: int
    page: int
    limit: int
    total_pages: int


class SurveyStatsResponse(BaseModel):
    survey_id: str
    breakdown: StatsBreakdown
    status_counts: StatusCounts


# --- Redirect flows ---


class SurveyStartResult(BaseModel):
    survey_url: str
    survey_id: str
    uid: str
    vendor_id: str
    country: str


class SurveyCallbackResult(BaseModel):
    status: ResponseStatus
    message: str
    redirect_url: str = ""
