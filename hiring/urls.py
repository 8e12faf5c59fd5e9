from django.urls import path
from .views import CandidateDetailView, CandidateListView, HiringRequestDetailView, HiringRequestListCreateView

urlpatterns = [
    path('api/v1/hiring-requests', HiringRequestListCreateView.as_view(), name='hiring-requests'),
    path('api/v1/hiring-requests/<int:pk>', HiringRequestDetailView.as_view(), name='hiring-request-detail'),
    path('api/v1/hiring-requests/<int:pk>/candidates', CandidateListView.as_view(), name='hiring-request-candidates'),
    path('api/v1/hiring-requests/<int:pk>/candidates/<int:candidate_id>', CandidateDetailView.as_view(),
         name='hiring-request-candidate'),
]
