"""Error taxonomy for the email pipeline

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer should answer with. Handlers in ``mailrelay.main`` turn these into
``{"success": false, "error": ..., "code": ...}`` responses.
"""
from typing import Optional


class EmailError(Exception):
    """Base class for all email pipeline errors"""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(EmailError):
    """Client-caused: malformed address, missing content/from, bad webhook payload"""
    status_code = 400
    code = "VALIDATION_ERROR"


class ConfigurationError(EmailError):
    """Operator-caused: no adapter registered for the requested provider"""
    status_code = 500
    code = "ADAPTER_NOT_FOUND"


class SendError(EmailError):
    """Provider rejected the email or the transport failed.

    The failed attempt is already persisted when this is raised; ``email_id``
    points at that log entry.
    """
    status_code = 500
    code = "SEND_FAILED"

    def __init__(self, message: str, email_id: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code)
        self.email_id = email_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.email_id:
            data["emailId"] = self.email_id
        return data


class ProviderRequestError(EmailError):
    """A provider management call (scheduling, statistics, suppressions) failed"""
    status_code = 502
    code = "PROVIDER_REQUEST_FAILED"

    def __init__(self, message: str, provider_status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message, code)
        self.provider_status = provider_status


class AuthenticationError(EmailError):
    """Webhook signature missing or invalid"""
    status_code = 401
    code = "INVALID_SIGNATURE"


# Stable codes
INVALID_ADDRESS = "INVALID_ADDRESS"
MISSING_CONTENT = "MISSING_CONTENT"
MISSING_FROM = "MISSING_FROM"
MISSING_MESSAGE_ID = "MISSING_MESSAGE_ID"
INVALID_WEBHOOK_PAYLOAD = "INVALID_WEBHOOK_PAYLOAD"
ADAPTER_NOT_FOUND = "ADAPTER_NOT_FOUND"
SEND_FAILED = "SEND_FAILED"
INVALID_SIGNATURE = "INVALID_SIGNATURE"
MISSING_SIGNATURE = "MISSING_SIGNATURE"
INVALID_SCHEDULE = "INVALID_SCHEDULE"
PROVIDER_REQUEST_FAILED = "PROVIDER_REQUEST_FAILED"
