from django.db.models import Count, Sum
from rest_framework import generics
from rest_framework.exceptions import ValidationError
from rest_framework.views import APIView
from auth_core.models import APIKey
from auth_core.responses import success
from auth_core.views import PrivateUserViewMixin
from .analytics import day_key, parse_datetime_param
from .models import ApiRequestLog
from .pagination import UsagePagination
from .serializers import ApiRequestLogSerializer

DELETED_KEY_LABEL = "Deleted Key"
SESSION_KEY_LABEL = "Session (Web App)"


class UserUsageMixin(PrivateUserViewMixin):
    """Tracked usage rows of the caller, narrowed by the common query filters."""

    def filter_logs(self, request, allow_key_filter=True):
        queryset = ApiRequestLog.objects.filter(user=request.user, is_tracked=True)
        params = request.query_params

        try:
            if params.get("from"):
                queryset = queryset.filter(created_at__gte=parse_datetime_param(params["from"]))
            if params.get("to"):
                queryset = queryset.filter(created_at__lte=parse_datetime_param(params["to"]))
        except (ValueError, OverflowError):
            raise ValidationError("Invalid from/to date format")

        api_key_id = params.get("api_key_id") or params.get("apiKeyId")
        if allow_key_filter and api_key_id:
            if not api_key_id.isdigit():
                raise ValidationError("Invalid API key id")
            queryset = queryset.filter(api_key_id=api_key_id)
        return queryset


class UsageListView(UserUsageMixin, generics.ListAPIView):
    """
    GET /api/v1/usage
    Paginated request log of the caller, newest first.
    """
    serializer_class = ApiRequestLogSerializer
    pagination_class = UsagePagination

    def get_queryset(self):
        queryset = self.filter_logs(self.request)
        endpoint = self.request.query_params.get("endpoint")
        if endpoint:
            queryset = queryset.filter(endpoint__icontains=endpoint)
        return queryset.select_related("api_key").order_by("-created_at")


class UsageSummaryView(UserUsageMixin, APIView):
    """
    GET /api/v1/usage/summary
    Totals plus daily and per-endpoint breakdowns for charting.
    """

    def get(self, request):
        queryset = self.filter_logs(request)
        totals = queryset.aggregate(
            calls=Count("id"),
            prompt_tokens=Sum("prompt_tokens"),
            completion_tokens=Sum("completion_tokens"),
            total_tokens=Sum("total_tokens"),
            cost=Sum("cost"),
        )

        daily, endpoints = {}, {}
        rows = queryset.order_by("created_at").values(
            "created_at", "endpoint", "prompt_tokens", "completion_tokens", "total_tokens", "cost",
        )
        for row in rows:
            day = day_key(row["created_at"])
            entry = daily.setdefault(day, {
                "date": day, "calls": 0, "prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0, "cost": 0,
            })
            entry["calls"] += 1
            entry["prompt_tokens"] += row["prompt_tokens"]
            entry["completion_tokens"] += row["completion_tokens"]
            entry["total_tokens"] += row["total_tokens"]
            entry["cost"] += float(row["cost"])

            entry = endpoints.setdefault(row["endpoint"], {
                "endpoint": row["endpoint"], "calls": 0, "total_tokens": 0, "cost": 0,
            })
            entry["calls"] += 1
            entry["total_tokens"] += row["total_tokens"]
            entry["cost"] += float(row["cost"])

        return success({
            "totals": {
                "calls": totals["calls"],
                "prompt_tokens": totals["prompt_tokens"] or 0,
                "completion_tokens": totals["completion_tokens"] or 0,
                "total_tokens": totals["total_tokens"] or 0,
                "cost": float(totals["cost"] or 0),
            },
            "daily": list(daily.values()),
            "by_endpoint": sorted(endpoints.values(), key=lambda entry: entry["calls"], reverse=True),
        })


class UsageByKeyView(UserUsageMixin, APIView):
    """
    GET /api/v1/usage/by-key
    Per API key breakdown. Browser sessions have no key; keys removed since
    keep their id in the log.
    """

    def get(self, request):
        groups = (
            self.filter_logs(request, allow_key_filter=False)
            .values("api_key_id")
            .annotate(
                calls=Count("id"),
                prompt_tokens_sum=Sum("prompt_tokens"),
                completion_tokens_sum=Sum("completion_tokens"),
                total_tokens_sum=Sum("total_tokens"),
                cost_sum=Sum("cost"),
            )
            .order_by()
        )
        groups = list(groups)
        key_ids = [group["api_key_id"] for group in groups if group["api_key_id"]]
        keys = {key.pk: key for key in APIKey.objects.filter(pk__in=key_ids)}

        data = []
        for group in groups:
            key_id = group["api_key_id"]
            key = keys.get(key_id)
            if key is not None:
                key_name = key.name
            else:
                key_name = DELETED_KEY_LABEL if key_id else SESSION_KEY_LABEL
            data.append({
                "api_key_id": key_id,
                "key_name": key_name,
                "key_prefix": key.prefix if key else None,
                "is_active": key.is_active if key else None,
                "last_used_at": key.last_used_at if key else None,
                "calls": group["calls"],
                "prompt_tokens": group["prompt_tokens_sum"] or 0,
                "completion_tokens": group["completion_tokens_sum"] or 0,
                "total_tokens": group["total_tokens_sum"] or 0,
                "cost": float(group["cost_sum"] or 0),
            })
        data.sort(key=lambda entry: entry["calls"], reverse=True)
        return success(data)
