from django.urls import path
from .views import (
                    RegisterView,
                    LoginAPIView,
                    LogoutView,
                    RefreshTokenView,
                    MeView,
                    ChangePasswordView,
                    APIKeyListCreateView,
                    APIKeyDetailView,
                    APIKeyRevealView,
                    APIKeyRegenerateView,
                    )

app_name = 'auth_core'

urlpatterns = [
    path('api/auth/signup', RegisterView.as_view(), name='register'),
    path('api/auth/login', LoginAPIView.as_view(), name='login'),
    path('api/auth/token/refresh', RefreshTokenView.as_view(), name='token_refresh'),
    path('api/auth/logout', LogoutView.as_view(), name='logout'),
    path('api/auth/me', MeView.as_view(), name='me'),
    path('api/auth/change-password', ChangePasswordView.as_view(), name='change_password'),
    path('api/v1/api-keys', APIKeyListCreateView.as_view(), name='api_keys'),
    path('api/v1/api-keys/<int:pk>', APIKeyDetailView.as_view(), name='api_key_detail'),
    path('api/v1/api-keys/<int:pk>/reveal', APIKeyRevealView.as_view(), name='api_key_reveal'),
    path('api/v1/api-keys/<int:pk>/regenerate', APIKeyRegenerateView.as_view(), name='api_key_regenerate'),
]
