import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class FleetError(Exception):
    """Base class for errors raised by the fleet services."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message=''):
        super().__init__(message)
        self.message = message


class ValidationError(FleetError):
    """Malformed or missing input (bad time ordering, missing customer data, bad numbers)."""
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(FleetError):
    """A state invariant would be broken, e.g. the car is not available."""
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(FleetError):
    """A referenced car, rental or maintenance entry does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class PersistenceError(FleetError):
    """The database failed underneath a service call."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def fleet_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None:
        return response

    if isinstance(exc, FleetError):
        if isinstance(exc, PersistenceError):
            logger.error('Persistence failure in %s: %s', context.get('view').__class__.__name__, exc)
        return Response({'error': exc.message}, status=exc.status_code)

    return None
