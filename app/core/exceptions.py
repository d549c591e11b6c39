"""
Error taxonomy for the notification dispatch paths.

Errors that stop an operation before any record is touched are raised and
mapped to an HTTP status by the exception handlers in ``app.main``. Failures
local to one notification record are never raised past the per-item boundary.
"""


class NotificationServiceError(Exception):
    """Base class for errors surfaced to the caller"""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(NotificationServiceError):
    """Integration enabled but a required setting (webhook URL) is missing"""

    http_status = 400


class RecipientResolutionError(NotificationServiceError):
    """Profile or product lookup failed"""

    http_status = 404


class MissingDestinationError(NotificationServiceError):
    """Recipient resolved but has no WhatsApp number on file"""

    http_status = 400


class DeliveryError(Exception):
    """Webhook call failed (non-2xx status or transport failure)"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
