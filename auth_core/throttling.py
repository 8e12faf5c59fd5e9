from datetime import timedelta
from django.core.cache import cache
from django.utils import timezone
from rest_framework.throttling import BaseThrottle
from .models import APIKey


class SlidingWindowThrottle(BaseThrottle):
    """
    Keeps the timestamps of recent requests in the cache and refuses a
    request once `rate_limit` of them fall inside `rate_period`.
    """
    cache_format = 'throttle_{ident}'
    rate_limit = 60
    rate_period = timedelta(minutes=1)

    def __init__(self):
        self._retry_after = None

    def get_cache_key(self, request, view):
        raise NotImplementedError

    def get_rate(self, request):
        return self.rate_limit, self.rate_period

    def allow_request(self, request, view):
        cache_key = self.get_cache_key(request, view)
        if not cache_key:
            return True

        rate_limit, rate_period = self.get_rate(request)
        history = cache.get(cache_key, [])
        now = timezone.now()
        history = [timestamp for timestamp in history if timestamp > now - rate_period]

        if len(history) >= rate_limit:
            self._retry_after = (history[0] + rate_period - now).total_seconds()
            return False

        history.append(now)
        cache.set(cache_key, history, timeout=int(rate_period.total_seconds()))
        self._retry_after = None
        return True

    def wait(self):
        return self._retry_after


class APIKeyRateThrottle(SlidingWindowThrottle):
    """Uses the limit stored on the API key itself."""
    cache_format = 'throttle_apikey_{ident}'

    def get_cache_key(self, request, view):
        api_key = request.auth
        if not isinstance(api_key, APIKey):
            return None
        return self.cache_format.format(ident=api_key.pk)

    def get_rate(self, request):
        return request.auth.rate_limit, request.auth.rate_limit_period


class UserRateThrottle(SlidingWindowThrottle):
    cache_format = 'throttle_user_{ident}'
    rate_limit = 120  # max requests allowed
    rate_period = timedelta(minutes=1)  # time window

    def get_cache_key(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return None
        return self.cache_format.format(ident=request.user.pk)


class LoginRateThrottle(SlidingWindowThrottle):
    cache_format = 'throttle_login_{ident}'
    rate_limit = 10  # per IP
    rate_period = timedelta(minutes=15)

    def get_cache_key(self, request, view):
        return self.cache_format.format(ident=self.get_ident(request))


class RegisterRateThrottle(LoginRateThrottle):
    cache_format = 'throttle_register_{ident}'
    rate_limit = 5
    rate_period = timedelta(hours=1)


class DemoRequestRateThrottle(LoginRateThrottle):
    cache_format = 'throttle_demo_{ident}'
    rate_limit = 5
    rate_period = timedelta(hours=1)
