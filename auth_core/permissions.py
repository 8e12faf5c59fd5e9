from rest_framework.permissions import SAFE_METHODS, BasePermission
from .models import SCOPE_READ, SCOPE_WRITE, APIKey


class APIKeyScopePermission(BasePermission):
    """
    Requests made with an API key need the `read` scope for safe methods
    and `write` otherwise. JWT requests are not scoped.
    """
    message = 'API key does not have the required scope.'
    code = 'INSUFFICIENT_SCOPE'

    def has_permission(self, request, view):
        if not isinstance(request.auth, APIKey):
            return True
        scope = SCOPE_READ if request.method in SAFE_METHODS else SCOPE_WRITE
        return request.auth.has_scope(scope)


class IsAdminRole(BasePermission):
    message = 'Admin access required'
    code = 'ADMIN_REQUIRED'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        profile = getattr(user, 'profile', None)
        return bool(profile and profile.is_admin)
