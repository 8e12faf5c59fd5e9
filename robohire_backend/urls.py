from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('auth_core.urls')),
    path('', include('billing.urls')),
    path('', include('usage.urls')),
    path('', include('backoffice.urls')),
    path('', include('demo.urls')),
    path('', include('hiring.urls')),
]
