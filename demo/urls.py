from django.urls import path
from .views import DemoRequestView

urlpatterns = [
    path('api/v1/request-demo', DemoRequestView.as_view(), name='request-demo'),
]
