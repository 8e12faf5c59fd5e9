import math
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from dateutil import parser as date_parser
from django.contrib.auth import get_user_model
from django.db.models import Avg, Count, Sum
from django.utils import timezone
from .models import ApiRequestLog

User = get_user_model()

BUCKETS = ("hour", "day", "week")
INTERVIEW_MODULES = ("interview_evaluation", "interview_invite")
RESUME_MATCH_MODULE = "resume_match"
DEFAULT_WINDOW = timedelta(days=30)
MAX_TIMELINE_ROWS = 50000
ANONYMOUS_EMAIL = "Anonymous / Unauthenticated"


def parse_datetime_param(value):
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    parsed = date_parser.isoparse(value.strip())
    if timezone.is_naive(parsed):
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed


def _param(params, *names):
    for name in names:
        value = params.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def parse_analytics_filters(params) -> dict:
    """
    Turn query parameters into analytics filters. Raises ValueError with a
    client-facing message on a bad date or bucket.
    """
    try:
        to = parse_datetime_param(params["to"]) if _param(params, "to") else timezone.now()
        start = parse_datetime_param(params["from"]) if _param(params, "from") else to - DEFAULT_WINDOW
    except (ValueError, OverflowError):
        raise ValueError("Invalid from/to date format")

    bucket = _param(params, "bucket") or "day"
    if bucket not in BUCKETS:
        raise ValueError("bucket must be one of: hour, day, week")

    user_id = _param(params, "user_id", "userId")
    if user_id is not None and not user_id.isdigit():
        raise ValueError("userId must be a numeric user id")
    return {
        "from": start,
        "to": to,
        "bucket": bucket,
        "user_id": user_id,
        "module": _param(params, "module"),
        "endpoint": _param(params, "endpoint"),
    }


def day_key(moment: datetime) -> str:
    return moment.astimezone(dt_timezone.utc).strftime("%Y-%m-%d")


def bucket_key(moment: datetime, bucket: str) -> str:
    moment = moment.astimezone(dt_timezone.utc)
    if bucket == "hour":
        return moment.strftime("%Y-%m-%dT%H:00")
    if bucket == "week":
        monday = moment - timedelta(days=moment.weekday())
        return monday.strftime("%Y-%m-%d")
    return moment.strftime("%Y-%m-%d")


def round_half_up(value) -> int:
    return int(math.floor(float(value) + 0.5))


def _average(total, calls) -> int:
    return round_half_up(total / calls) if calls else 0


def _rate(errors, calls) -> float:
    return errors / calls if calls else 0


def _money(value) -> float:
    return float(value or 0)


def filtered_logs(filters: dict):
    queryset = ApiRequestLog.objects.filter(created_at__gte=filters["from"], created_at__lte=filters["to"])
    if filters.get("user_id"):
        queryset = queryset.filter(user_id=filters["user_id"])
    if filters.get("module"):
        queryset = queryset.filter(module=filters["module"])
    if filters.get("endpoint"):
        queryset = queryset.filter(endpoint__icontains=filters["endpoint"])
    return queryset


def _group(queryset, *fields, latency=True):
    aggregates = {
        "calls": Count("id"),
        "llm_calls_sum": Sum("llm_calls"),
        "total_tokens_sum": Sum("total_tokens"),
        "cost_sum": Sum("cost"),
    }
    if latency:
        aggregates["duration_sum"] = Sum("duration_ms")
    return queryset.values(*fields).annotate(**aggregates).order_by()


def _group_row(row, latency=True) -> dict:
    data = {
        "calls": row["calls"],
        "llm_calls": row["llm_calls_sum"] or 0,
        "total_tokens": row["total_tokens_sum"] or 0,
        "cost": _money(row["cost_sum"]),
    }
    if latency:
        data["avg_latency_ms"] = _average(row["duration_sum"] or 0, row["calls"])
    return data


def _new_series_entry(key_name, key):
    return {key_name: key, "calls": 0, "llm_calls": 0, "total_tokens": 0, "cost": Decimal("0"),
            "total_latency_ms": 0, "errors": 0}


def _add_to_series(entry, row, is_error):
    entry["calls"] += 1
    entry["llm_calls"] += row["llm_calls"]
    entry["total_tokens"] += row["total_tokens"]
    entry["cost"] += row["cost"] or 0
    entry["total_latency_ms"] += row["duration_ms"]
    if is_error:
        entry["errors"] += 1


def _finish_series(series: dict) -> list:
    results = []
    for key in sorted(series):
        entry = series[key]
        entry["cost"] = _money(entry["cost"])
        entry["avg_latency_ms"] = _average(entry["total_latency_ms"], entry["calls"])
        entry["error_rate"] = _rate(entry["errors"], entry["calls"])
        results.append(entry)
    return results


class _Workflow:
    def __init__(self):
        self.calls = 0
        self.tokens = 0
        self.cost = Decimal("0")
        self.latency = 0
        self.errors = 0

    def add(self, row, is_error):
        self.calls += 1
        self.tokens += row["total_tokens"]
        self.cost += row["cost"] or 0
        self.latency += row["duration_ms"]
        if is_error:
            self.errors += 1

    def as_dict(self):
        return {
            "calls": self.calls,
            "total_tokens": self.tokens,
            "cost": _money(self.cost),
            "avg_latency_ms": _average(self.latency, self.calls),
            "error_rate": _rate(self.errors, self.calls),
        }


def _by_user(queryset) -> list:
    groups = list(_group(queryset, "user_id"))
    user_ids = [group["user_id"] for group in groups if group["user_id"]]
    users = {
        user.pk: user
        for user in User.objects.filter(pk__in=user_ids).select_related("profile")
    }

    results = []
    for group in groups:
        user = users.get(group["user_id"])
        profile = getattr(user, "profile", None) if user else None
        results.append({
            "user_id": group["user_id"],
            "email": user.email if user and user.email else ANONYMOUS_EMAIL,
            "name": (profile.name or None) if profile else None,
            "company": (profile.company or None) if profile else None,
            "role": profile.role if profile else None,
            **_group_row(group),
        })
    return sorted(results, key=lambda entry: entry["calls"], reverse=True)


def _by_field(queryset, field_name) -> list:
    results = [
        {field_name: group[field_name], **_group_row(group, latency=False)}
        for group in _group(queryset, field_name, latency=False)
        if group[field_name]
    ]
    return sorted(results, key=lambda entry: entry["llm_calls"], reverse=True)


def build_usage_analytics(filters: dict) -> dict:
    """
    Aggregate request logs matching ``filters`` into totals, workflow
    breakdowns, time series and per-dimension rankings.
    """
    queryset = filtered_logs(filters)
    bucket = filters["bucket"]

    total_calls = queryset.count()
    aggregates = queryset.aggregate(
        llm_calls=Sum("llm_calls"),
        prompt_tokens=Sum("prompt_tokens"),
        completion_tokens=Sum("completion_tokens"),
        total_tokens=Sum("total_tokens"),
        cost=Sum("cost"),
        duration=Sum("duration_ms"),
        avg_duration=Avg("duration_ms"),
    )

    by_module = sorted(
        ({"module": group["module"], **_group_row(group)} for group in _group(queryset, "module")),
        key=lambda entry: entry["calls"], reverse=True,
    )
    by_api = sorted(
        (
            {
                "api_name": group["api_name"],
                "endpoint": group["endpoint"],
                "method": group["method"],
                "module": group["module"],
                **_group_row(group),
            }
            for group in _group(queryset, "api_name", "endpoint", "method", "module")
        ),
        key=lambda entry: entry["calls"], reverse=True,
    )

    timeline = queryset.order_by("created_at").values(
        "created_at", "user_id", "module", "status_code", "duration_ms", "total_tokens", "llm_calls", "cost",
    )[:MAX_TIMELINE_ROWS]

    by_day, by_period = {}, {}
    interview, resume_match = _Workflow(), _Workflow()
    error_count = 0
    unique_users = set()

    for row in timeline:
        is_error = row["status_code"] >= 400
        day = day_key(row["created_at"])
        period = bucket_key(row["created_at"], bucket)
        _add_to_series(by_day.setdefault(day, _new_series_entry("date", day)), row, is_error)
        _add_to_series(by_period.setdefault(period, _new_series_entry("period", period)), row, is_error)

        if is_error:
            error_count += 1
        if row["user_id"]:
            unique_users.add(row["user_id"])
        if row["module"] == RESUME_MATCH_MODULE:
            resume_match.add(row, is_error)
        if row["module"] in INTERVIEW_MODULES:
            interview.add(row, is_error)

    return {
        "filters": {
            "from": filters["from"].isoformat(),
            "to": filters["to"].isoformat(),
            "bucket": bucket,
            "user_id": filters.get("user_id"),
            "module": filters.get("module"),
            "endpoint": filters.get("endpoint"),
        },
        "totals": {
            "calls": total_calls,
            "unique_users": len(unique_users),
            "llm_calls": aggregates["llm_calls"] or 0,
            "prompt_tokens": aggregates["prompt_tokens"] or 0,
            "completion_tokens": aggregates["completion_tokens"] or 0,
            "total_tokens": aggregates["total_tokens"] or 0,
            "cost": _money(aggregates["cost"]),
            "total_latency_ms": aggregates["duration"] or 0,
            "avg_latency_ms": round_half_up(aggregates["avg_duration"] or 0),
            "error_count": error_count,
            "error_rate": _rate(error_count, total_calls),
            "interview_calls": interview.calls,
            "resume_match_calls": resume_match.calls,
        },
        "workflow": {
            "interview": interview.as_dict(),
            "resume_match": resume_match.as_dict(),
        },
        "by_day": _finish_series(by_day),
        "by_period": _finish_series(by_period),
        "by_user": _by_user(queryset),
        "by_module": by_module,
        "by_api": by_api,
        "by_interview": [entry for entry in by_api if entry["module"] in INTERVIEW_MODULES],
        "by_resume_match": [entry for entry in by_api if entry["module"] == RESUME_MATCH_MODULE],
        "by_provider": _by_field(queryset, "provider"),
        "by_model": _by_field(queryset, "model"),
    }
