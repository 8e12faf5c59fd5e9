import logging
from django.db.models import Count, F, Prefetch
from rest_framework import generics, status
from rest_framework.exceptions import NotFound
from rest_framework.views import APIView
from auth_core.responses import success, validation_failure
from auth_core.views import PrivateUserViewMixin
from .models import Candidate, HiringRequest
from .pagination import CandidatePagination, HiringRequestPagination
from .serializers import (
    CandidateSerializer,
    CandidateStatusSerializer,
    HiringRequestDetailSerializer,
    HiringRequestSerializer,
    HiringRequestWriteSerializer,
)

logger = logging.getLogger(__name__)

# Best matches first, unscored candidates last
BY_MATCH_SCORE = (F("match_score").desc(nulls_last=True), "-created_at", "-id")


class HiringRequestOwnerMixin(PrivateUserViewMixin):

    def get_hiring_request(self, request, pk):
        hiring_request = HiringRequest.objects.filter(pk=pk, user=request.user).first()
        if hiring_request is None:
            raise NotFound("Hiring request not found")
        return hiring_request


class HiringRequestListCreateView(HiringRequestOwnerMixin, generics.ListAPIView):
    """
    GET  /api/v1/hiring-requests  the caller's hiring requests, newest first
    POST /api/v1/hiring-requests  open a new one
    """
    serializer_class = HiringRequestSerializer
    pagination_class = HiringRequestPagination

    def get_queryset(self):
        queryset = HiringRequest.objects.filter(user=self.request.user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset.annotate(candidate_count=Count("candidates")).order_by("-created_at", "-id")

    def post(self, request):
        serializer = HiringRequestWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        hiring_request = serializer.save(user=request.user)
        logger.info("Hiring request %s created by user %s", hiring_request.pk, request.user.pk)
        return success(HiringRequestSerializer(hiring_request).data, status=status.HTTP_201_CREATED)


class HiringRequestDetailView(HiringRequestOwnerMixin, APIView):
    """
    GET    /api/v1/hiring-requests/<id>  with its candidates, best match first
    PATCH  /api/v1/hiring-requests/<id>
    DELETE /api/v1/hiring-requests/<id>
    """

    def get(self, request, pk):
        queryset = HiringRequest.objects.filter(user=request.user).prefetch_related(
            Prefetch("candidates", queryset=Candidate.objects.order_by(*BY_MATCH_SCORE))
        )
        hiring_request = queryset.filter(pk=pk).first()
        if hiring_request is None:
            raise NotFound("Hiring request not found")
        return success(HiringRequestDetailSerializer(hiring_request).data)

    def patch(self, request, pk):
        hiring_request = self.get_hiring_request(request, pk)
        serializer = HiringRequestWriteSerializer(hiring_request, data=request.data, partial=True)
        if not serializer.is_valid():
            return validation_failure(serializer)

        serializer.save()
        return success(HiringRequestSerializer(hiring_request).data)

    def delete(self, request, pk):
        hiring_request = self.get_hiring_request(request, pk)
        hiring_request.delete()
        logger.info("Hiring request %s deleted by user %s", pk, request.user.pk)
        return success({'message': 'Hiring request deleted successfully'})


class CandidateListView(HiringRequestOwnerMixin, generics.ListAPIView):
    """GET /api/v1/hiring-requests/<id>/candidates"""
    serializer_class = CandidateSerializer
    pagination_class = CandidatePagination

    def get_queryset(self):
        hiring_request = self.get_hiring_request(self.request, self.kwargs["pk"])
        queryset = hiring_request.candidates.all()
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset.order_by(*BY_MATCH_SCORE)


class CandidateDetailView(HiringRequestOwnerMixin, APIView):
    """PATCH /api/v1/hiring-requests/<id>/candidates/<candidate_id>  move a candidate through the pipeline"""

    def patch(self, request, pk, candidate_id):
        hiring_request = self.get_hiring_request(request, pk)
        serializer = CandidateStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failure(serializer)

        candidate = hiring_request.candidates.filter(pk=candidate_id).first()
        if candidate is None:
            raise NotFound("Candidate not found")

        candidate.status = serializer.validated_data["status"]
        candidate.save(update_fields=["status", "updated_at"])
        return success(CandidateSerializer(candidate).data)
