'''
    Rate-limits per requester. The rate comes from FILE_ARCHIVE['REQUESTER_THROTTLE_RATE']
    (read at request time, so it follows override_settings), falling back to
    REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['requester'].

    Registered users are keyed by their UserId header; anonymous visitors by client IP,
    so a burst of anonymous uploads from one address is limited as well.
    When the rate is exceeded, raises a DRF Throttled with a friendly message and a Retry-After header.
'''

from rest_framework.exceptions import Throttled
from rest_framework.throttling import SimpleRateThrottle

from .permissions import requester_id
from .utils import archive_setting, is_registered


# One budget per requester across every endpoint using this class.
class RequesterRateThrottle(SimpleRateThrottle):
    # scope ties into REST_FRAMEWORK['DEFAULT_THROTTLE_RATES'] = {'requester': ...}
    scope = 'requester'

    def get_rate(self):
        rate = archive_setting('REQUESTER_THROTTLE_RATE')
        if rate:
            return rate
        return super().get_rate()

    def get_cache_key(self, request, view):
        # Anonymous requests share no UserId, so they are told apart by address
        user_id = requester_id(request)
        ident = f"user:{user_id}" if is_registered(user_id) else f"ip:{self.get_ident(request)}"
        # DRF keeps the counters in its cache ("requester X made 3 requests this second")
        return self.cache_format % {'scope': self.scope, 'ident': ident}

    # Overrides DRF's default failure behavior
    def throttle_failure(self):
        # Include wait so DRF sets Retry-After correctly
        raise Throttled(detail="Call Limit Reached", wait=self.wait())
