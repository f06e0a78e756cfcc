'''
Requests identify their user through the UserId header; there are no Django users or tokens.
Most endpoints also serve anonymous visitors, so this permission is only attached
to the actions that need a real account behind them (commenting, logging out).
'''
from rest_framework.permissions import BasePermission

from .utils import is_registered


def requester_id(request):
    # UserId: ... from curl/fetch, HTTP_USERID when set through the test client
    return request.headers.get('UserId') or request.META.get('HTTP_USERID') or None


class HasUserIdHeader(BasePermission):
    message = "Missing required UserId header."

    def has_permission(self, request, view):
        return is_registered(requester_id(request))
