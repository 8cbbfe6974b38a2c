# panel_router/errors.py
from typing import Optional


class RedirectFlowError(Exception):
    """Base class for failures shown to the respondent on an error page."""

    default_message = "An error occurred"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadInputError(RedirectFlowError):
    default_message = "Missing required parameters"


class InvalidLinkError(RedirectFlowError):
    # Never says which check failed
    default_message = "Invalid or expired survey link"


class NotFoundError(RedirectFlowError):
    default_message = "Survey not found"


class SurveyClosedError(RedirectFlowError):
    default_message = "This survey is closed"


class SurveyPausedError(RedirectFlowError):
    default_message = "This survey is paused"


class VendorInactiveError(RedirectFlowError):
    default_message = "This vendor is not active"


class DuplicateStartError(RedirectFlowError):
    default_message = "This uid has already started the survey"


class NotStartedError(RedirectFlowError):
    default_message = "Survey response not found. Please start the survey first."


class MisconfiguredURLError(RedirectFlowError):
    default_message = "Survey URL is not configured for this country"
