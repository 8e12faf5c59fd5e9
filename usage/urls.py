from django.urls import path
from .views import UsageByKeyView, UsageListView, UsageSummaryView

urlpatterns = [
    path('api/v1/usage', UsageListView.as_view(), name='usage-list'),
    path('api/v1/usage/summary', UsageSummaryView.as_view(), name='usage-summary'),
    path('api/v1/usage/by-key', UsageByKeyView.as_view(), name='usage-by-key'),
]
