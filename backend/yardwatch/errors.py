"""
Error taxonomy for the alert and search APIs.

Errors raised synchronously while serving a request subclass ``AlertError``
and carry the HTTP status the API answers with. ``UpstreamFailure`` and
``DeliveryFailure`` never reach a caller: the aggregator turns the first into
an empty yard contribution, push delivery turns the second into a status
string on the saved search.
"""


class AlertError(Exception):
    """Base class for errors returned to API callers"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AlertError):
    status_code = 400


class ForbiddenError(AlertError):
    status_code = 403


class NotFoundError(AlertError):
    status_code = 404


class ConflictError(AlertError):
    status_code = 409


class QuotaError(AlertError):
    status_code = 429


class DependencyUnavailable(AlertError):
    """Durable store or key material is not usable"""
    status_code = 500


class UpstreamFailure(Exception):
    """A single yard site could not be fetched or parsed"""


class DeliveryFailure(Exception):
    """The push service rejected or never received the wake-up"""
