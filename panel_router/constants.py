# panel_router/constants.py
import enum
from typing import Optional


class SurveyStatus(str, enum.Enum):
    LP = "LP"
    LIVE = "LIVE"
    CLOSED = "CLOSED"
    PAUSE = "PAUSE"
    INVOICED = "INVOICED"
    PAID = "PAID"


class ResponseStatus(str, enum.Enum):
    INITIATED = "INITIATED"
    SECURITY = "SECURITY"
    QUOTA = "QUOTA"  # accepted from integrations, stored as QUOTA_FULL
    QUOTA_FULL = "QUOTA_FULL"
    COMPLETED = "COMPLETED"
    TERMINATED = "TERMINATED"


class StatsField(str, enum.Enum):
    INITIATED = "initiated"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    QUOTA_FULL = "quota_full"
    SECURITY = "security"


# Statuses the survey platform may send to the callback endpoint
CALLBACK_STATUSES = frozenset(
    {
        ResponseStatus.COMPLETED,
        ResponseStatus.TERMINATED,
        ResponseStatus.QUOTA,
        ResponseStatus.QUOTA_FULL,
        ResponseStatus.SECURITY,
    }
)

_STATS_FIELDS = {
    ResponseStatus.INITIATED: StatsField.INITIATED,
    ResponseStatus.COMPLETED: StatsField.COMPLETED,
    ResponseStatus.TERMINATED: StatsField.TERMINATED,
    ResponseStatus.QUOTA: StatsField.QUOTA_FULL,
    ResponseStatus.QUOTA_FULL: StatsField.QUOTA_FULL,
    ResponseStatus.SECURITY: StatsField.SECURITY,
}

_STATUS_MESSAGES = {
    ResponseStatus.COMPLETED: "Survey completed successfully!",
    ResponseStatus.TERMINATED: "Survey terminated.",
    ResponseStatus.QUOTA: "Survey quota is full.",
    ResponseStatus.QUOTA_FULL: "Survey quota is full.",
    ResponseStatus.SECURITY: "Security check failed.",
}

# SurveyVendor attribute holding the vendor URL for each terminal status
REDIRECT_ATTRIBUTES = {
    ResponseStatus.COMPLETED: "complete_redirect",
    ResponseStatus.TERMINATED: "terminate_redirect",
    ResponseStatus.QUOTA_FULL: "quota_full_redirect",
    ResponseStatus.SECURITY: "security_redirect",
}


def parse_callback_status(value: Optional[str]) -> Optional[ResponseStatus]:
    """Returns the matching callback status, or None if ``value`` is not one."""
    if not value:
        return None
    try:
        status = ResponseStatus(value)
    except ValueError:
        return None
    return status if status in CALLBACK_STATUSES else None


def normalize_status(status: ResponseStatus) -> ResponseStatus:
    if status == ResponseStatus.QUOTA:
        return ResponseStatus.QUOTA_FULL
    return status


def stats_field_for(status: ResponseStatus) -> StatsField:
    return _STATS_FIELDS[ResponseStatus(status)]


def status_message(status: ResponseStatus) -> str:
    return _STATUS_MESSAGES.get(ResponseStatus(status), "Survey status updated.")
