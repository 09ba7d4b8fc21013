import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class InvariantViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This change would break a project rule."
    default_code = 'invariant_violation'


def taskflow_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None:
        return response

    request = context.get('request')
    logger.exception(
        "Unhandled error on %s %s",
        getattr(request, 'method', '?'), getattr(request, 'path', '?'),
        exc_info=exc,
    )
    return Response(
        {"detail": "Internal server error."},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
