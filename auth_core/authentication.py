from django.utils import timezone
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from .models import API_KEY_PREFIX, APIKey


class APIKeyAuthentication(BaseAuthentication):
    """
    Authenticates `X-API-KEY: rh_...` or `Authorization: Bearer rh_...`.
    Other bearer tokens are left to the JWT authenticator.
    """
    keyword = 'Bearer'

    def get_raw_key(self, request):
        key = request.headers.get('X-API-KEY')
        if key:
            return key.strip()

        parts = request.headers.get('Authorization', '').split()
        if len(parts) == 2 and parts[0] == self.keyword and parts[1].startswith(API_KEY_PREFIX):
            return parts[1]
        return None

    def authenticate(self, request):
        raw_key = self.get_raw_key(request)
        if not raw_key:
            return None

        api_key = APIKey.objects.select_related('user').filter(key=raw_key).first()
        if api_key is None or not api_key.is_active:
            raise AuthenticationFailed('Invalid API key')
        if api_key.is_expired:
            raise AuthenticationFailed('API key has expired')
        if not api_key.user.is_active:
            raise AuthenticationFailed('User account is disabled')

        APIKey.objects.filter(pk=api_key.pk).update(last_used_at=timezone.now())
        return (api_key.user, api_key)

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'
