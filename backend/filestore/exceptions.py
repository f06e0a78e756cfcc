'''
    Errors raised by the library/comments/accounts layers.
    They are DRF APIExceptions, so views simply let them propagate and DRF renders
    {"detail": "..."} with the right status code.

    archive_exception_handler is wired in as REST_FRAMEWORK['EXCEPTION_HANDLER'] and
    additionally turns storage failures (OSError, broken JSON documents) into a
    logged 500 JSON response instead of Django's HTML error page.
'''

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class FileNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'File not found'
    default_code = 'file_not_found'


class UserNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'User not found'
    default_code = 'user_not_found'


class CommentNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Comment not found or not authorized'
    default_code = 'comment_not_found'


class InvalidOperation(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid operation'
    default_code = 'invalid_operation'


class NotAllowed(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Permission denied'
    default_code = 'not_allowed'


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid username or password'
    default_code = 'invalid_credentials'


class UsernameTaken(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Username already exists'
    default_code = 'username_taken'


class ShareExpired(APIException):
    status_code = status.HTTP_410_GONE
    default_detail = 'Share link has expired'
    default_code = 'share_expired'


class StorageError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Storage operation failed'
    default_code = 'storage_error'


class DocumentCorrupt(Exception):
    """A metadata document exists but is not a JSON list."""


def archive_exception_handler(exc, context):
    # rest_framework.views loads the throttle classes from settings, which import this module
    from rest_framework.views import exception_handler

    response = exception_handler(exc, context)
    if response is not None:
        return response

    # Anything DRF does not know about but we can attribute to storage
    if isinstance(exc, (OSError, DocumentCorrupt)):
        view = context.get('view')
        logger.error("Storage failure in %s", view.__class__.__name__ if view else 'unknown view', exc_info=exc)
        return Response({'detail': StorageError.default_detail}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return None
