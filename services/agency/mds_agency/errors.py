"""
Error types for the MDS Agency service.

Storage backends raise NotFoundError and DuplicateError. The agency service
translates everything the caller should see into an AgencyError, which the
HTTP layer renders as {error, error_description, error_details}.
"""

from typing import Any, Optional

from .models import ErrorObject


class NotFoundError(Exception):
    """A record is not present in a backend"""
    pass


class DuplicateError(Exception):
    """A record with the same key has already been written"""
    pass


class AgencyError(Exception):
    status_code = 400
    error = 'bad_param'

    def __init__(self, error_description: str, error_details: Optional[Any] = None):
        super().__init__(error_description)
        self.error_description = error_description
        self.error_details = error_details

    def to_error_object(self) -> ErrorObject:
        return ErrorObject(
            error=self.error,
            error_description=self.error_description,
            error_details=self.error_details
        )

    @classmethod
    def from_error_object(cls, failure: ErrorObject) -> 'AgencyError':
        """Wrap a validator result, keeping its error code"""
        error_class = {
            'missing_param': MissingParamError,
            'bad_param': BadParamError,
        }.get(failure.error, BadParamError)
        return error_class(failure.error_description, failure.error_details)


class MissingParamError(AgencyError):
    error = 'missing_param'


class BadParamError(AgencyError):
    error = 'bad_param'


class DuplicateEventError(AgencyError):
    error = 'duplicate'


class UnregisteredError(AgencyError):
    error = 'unregistered'


class AlreadyRegisteredError(AgencyError):
    status_code = 409
    error = 'already_registered'


class InvalidDataError(AgencyError):
    error = 'invalid_data'


class NotFoundResponse(AgencyError):
    """Rendered as an empty 404 body"""
    status_code = 404
    error = 'not_found'


class MissingProviderError(AgencyError):
    status_code = 403
    error = 'missing_provider_id'


class InvalidProviderError(AgencyError):
    status_code = 403
    error = 'invalid_provider_id'


class ServerError(AgencyError):
    status_code = 500
    error = 'server_error'

    def __init__(self, error_description: str = 'Unknown server error', error_details: Optional[Any] = None):
        super().__init__(error_description, error_details)
