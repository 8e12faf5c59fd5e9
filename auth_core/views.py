import logging
from django.contrib.auth import authenticate
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView
from user_profile.models import Profile
from .models import MAX_API_KEYS_PER_USER, APIKey, default_scopes
from .permissions import APIKeyScopePermission, IsAdminRole
from .responses import failure, success, validation_failure
from .serializers import (
    APIKeyCreateSerializer,
    APIKeySerializer,
    APIKeyUpdateSerializer,
    ChangePasswordSerializer,
    LoginSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    UserSerializer,
)
from .throttling import APIKeyRateThrottle, LoginRateThrottle, RegisterRateThrottle, UserRateThrottle

logger = logging.getLogger(__name__)


class PublicViewMixin:
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [LoginRateThrottle]


class PrivateUserViewMixin:
    permission_classes = [IsAuthenticated, APIKeyScopePermission]
    throttle_classes = [APIKeyRateThrottle, UserRateThrottle]


class AdminViewMixin(PrivateUserViewMixin):
    permission_classes = [IsAuthenticated, IsAdminRole, APIKeyScopePermission]


def _token_pair(user):
    refresh = RefreshToken.for_user(user)
    return {'refresh': str(refresh), 'access': str(refresh.access_token)}


class RegisterView(PublicViewMixin, APIView):
    throttle_classes = [RegisterRateThrottle]

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        user = serializer.save()
        logger.info("New user registered: %s", user.pk)
        return success(
            {'user': UserSerializer(user).data, 'tokens': _token_pair(user)},
            status=status.HTTP_201_CREATED,
        )


class LoginAPIView(PublicViewMixin, APIView):
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        user = authenticate(
            request,
            username=serializer.validated_data['email'],
            password=serializer.validated_data['password'],
        )
        if not user:
            # no authenticators on this view, so answer 401 directly
            return failure('Invalid credentials', status=401, code='AUTH_REQUIRED')

        user.last_login = timezone.now()
        user.save(update_fields=['last_login'])
        return success({'user': UserSerializer(user).data, 'tokens': _token_pair(user)})


class RefreshTokenView(TokenRefreshView):
    """Token refresh wrapped in the API envelope."""

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        return success(response.data, status=response.status_code)


class LogoutView(PrivateUserViewMixin, APIView):
    throttle_classes = []

    def post(self, request):
        refresh_token = request.data.get('refresh')
        if not refresh_token:
            return failure('Refresh token required', status=400)

        try:
            RefreshToken(refresh_token).blacklist()
        except TokenError:
            return failure('Invalid or expired token', status=400)
        return success({'message': 'Logout successful'})


class ChangePasswordView(PrivateUserViewMixin, APIView):
    """
    POST /api/auth/change-password
    Every refresh token issued to the user is blacklisted, so other sessions
    have to log in again once their access token expires.
    """

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return validation_failure(serializer)

        user = serializer.save()
        outstanding = OutstandingToken.objects.filter(user=user, blacklistedtoken__isnull=True)
        BlacklistedToken.objects.bulk_create([BlacklistedToken(token=token) for token in outstanding])
        logger.info("Password changed for user %s", user.pk)
        return success({'message': 'Password changed successfully'})


class MeView(PrivateUserViewMixin, APIView):
    def get(self, request):
        return success(UserSerializer(request.user).data)

    def patch(self, request):
        profile, _ = Profile.objects.get_or_create(user=request.user)
        serializer = ProfileUpdateSerializer(profile, data=request.data, partial=True)
        if not serializer.is_valid():
            return validation_failure(serializer)
        serializer.save()
        return success(UserSerializer(request.user).data)


class APIKeyListCreateView(PrivateUserViewMixin, APIView):
    """
    GET  /api/v1/api-keys  list the caller's keys (masked)
    POST /api/v1/api-keys  create a key; the full value is returned only here
    """

    def get(self, request):
        keys = APIKey.objects.filter(user=request.user)
        return success(APIKeySerializer(keys, many=True).data)

    def post(self, request):
        serializer = APIKeyCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        if APIKey.objects.filter(user=request.user).count() >= MAX_API_KEYS_PER_USER:
            return failure(f'Maximum of {MAX_API_KEYS_PER_USER} API keys allowed per user', status=400)

        data = serializer.validated_data
        api_key = APIKey.objects.create(
            user=request.user,
            name=data['name'],
            scopes=data['scopes'] if 'scopes' in data else default_scopes(),
            expires_at=data.get('expires_at'),
        )
        logger.info("API key %s created for user %s", api_key.prefix, request.user.pk)
        return success(
            {**APIKeySerializer(api_key).data, 'key': api_key.key},
            status=status.HTTP_201_CREATED,
            message='API key created. Save this key securely - it will not be shown again.',
        )


class APIKeyDetailView(PrivateUserViewMixin, APIView):
    def get_object(self, request, pk):
        return get_object_or_404(APIKey, pk=pk, user=request.user)

    def get(self, request, pk):
        return success(APIKeySerializer(self.get_object(request, pk)).data)

    def patch(self, request, pk):
        api_key = self.get_object(request, pk)
        serializer = APIKeyUpdateSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return validation_failure(serializer)

        for field, value in serializer.validated_data.items():
            setattr(api_key, field, value)
        api_key.save()
        return success(APIKeySerializer(api_key).data)

    def delete(self, request, pk):
        api_key = self.get_object(request, pk)
        api_key.delete()
        return success({'message': 'API key deleted'})


class APIKeyRevealView(PrivateUserViewMixin, APIView):
    def get(self, request, pk):
        api_key = get_object_or_404(APIKey, pk=pk, user=request.user)
        return success({'key': api_key.key})


class APIKeyRegenerateView(PrivateUserViewMixin, APIView):
    def post(self, request, pk):
        api_key = get_object_or_404(APIKey, pk=pk, user=request.user)
        new_key = api_key.regenerate_key()
        logger.info("API key %s regenerated for user %s", api_key.pk, request.user.pk)
        return success(
            {**APIKeySerializer(api_key).data, 'key': new_key},
            message='API key regenerated. Save this key securely - it will not be shown again.',
        )
