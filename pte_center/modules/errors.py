"""
Error Types Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

Exception hierarchy shared by the reminder, report and registration endpoints.
Every error carries the HTTP status it maps to and renders itself as the
structured JSON body returned to callers.
"""

from typing import Any, Dict, Optional


class PTECenterError(Exception):
    """Base class for all errors surfaced at an endpoint boundary."""

    status_code = 500
    default_message = 'An unexpected error occurred'

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'success': False,
            'message': self.message
        }
        if self.detail:
            body['error'] = self.detail
        return body


class AuthorizationError(PTECenterError):
    """Missing or invalid credential. Never leaks internal detail."""

    status_code = 401
    default_message = 'Unauthorized access'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': False,
            'message': self.message,
            'error': 'Unauthorized'
        }


class ValidationError(PTECenterError):
    status_code = 400
    default_message = 'Missing required fields'


class ConfigurationError(PTECenterError):
    """A required provider credential or per-user setting is missing."""

    status_code = 400
    default_message = 'Required configuration is missing'


class UpstreamDeliveryError(PTECenterError):
    """The email provider or a webhook rejected the send."""

    status_code = 500
    default_message = 'Notification delivery failed'

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None,
                 provider_status: Optional[int] = None, provider_body: Any = None):
        super().__init__(message, detail)
        self.provider_status = provider_status
        self.provider_body = provider_body

    def provider_error(self) -> Optional[Dict[str, Any]]:
        if self.provider_status is None and self.provider_body is None:
            return None
        body = self.provider_body
        if isinstance(body, bytes):
            body = body.decode('utf-8', errors='replace')
        return {
            'statusCode': self.provider_status,
            'body': body
        }


class DataAccessError(PTECenterError):
    status_code = 500
    default_message = 'Failed to read from the document store'
