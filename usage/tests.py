import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest import mock
from django.contrib.auth.models import User
from django.core.cache import cache
from django.db import DatabaseError
from django.http import HttpResponse
from django.test import RequestFactory, TestCase, override_settings
from django.urls import include, path
from rest_framework.test import APIClient
from rest_framework.views import APIView
from auth_core.models import APIKey
from auth_core.responses import success
from auth_core.views import PrivateUserViewMixin
from usage import context
from usage.analytics import bucket_key, build_usage_analytics, parse_analytics_filters
from usage.classification import classify_api_request
from usage.middleware import RequestAuditMiddleware, RequestIdMiddleware, get_client_ip
from usage.mixins import TrackedUsageMixin
from usage.models import ApiRequestLog, LLMCallLog


class MatchResumeView(TrackedUsageMixin, PrivateUserViewMixin, APIView):

    def post(self, request):
        context.record_llm_call("openai", "gpt-4o", prompt_tokens=120, completion_tokens=30,
                                cost="0.0021", duration_ms=800)
        context.record_llm_call("kimi", "moonshot-v1-8k", prompt_tokens=10, completion_tokens=5,
                                cost="0.0001", duration_ms=90)
        return success({"score": 87})


urlpatterns = [
    path("api/v1/match-resume", MatchResumeView.as_view()),
    path("", include("usage.urls")),
]


def log_at(moment, **fields):
    """Create a request log row and pin its creation time."""
    defaults = {
        "endpoint": "/api/v1/match-resume",
        "method": "POST",
        "module": "resume_match",
        "api_name": "match_resume",
        "status_code": 200,
        "is_tracked": True,
    }
    defaults.update(fields)
    row = ApiRequestLog.objects.create(**defaults)
    ApiRequestLog.objects.filter(pk=row.pk).update(created_at=moment)
    return row


class ClassifyApiRequestTest(TestCase):

    def test_modules(self):
        cases = {
            "/api/auth/login": ("auth", "auth_login"),
            "/api/v1/admin/users/42/adjust-balance": ("admin", "admin_users_id_adjust_balance"),
            "/api/v1/usage/summary": ("usage", "usage_summary"),
            "/api/v1/api-keys/7/reveal": ("api_keys", "api_keys_id_reveal"),
            "/api/v1/hiring-requests/title-suggestion": ("hiring_title_suggestion", "hiring_requests_id"),
            "/api/v1/hiring-requests/12": ("hiring_requests", "hiring_requests_id"),
            "/api/v1/match-resume": ("resume_match", "match_resume"),
            "/api/v1/evaluate-interview": ("interview_evaluation", "id"),
            "/api/v1/batch-invite": ("interview_invite", "batch_invite"),
            "/api/v1/parse-resume": ("resume_parse", "parse_resume"),
            "/api/v1/billing/topup/sync": ("billing", "billing_topup_sync"),
            "/api/v1/webhooks/stripe": ("billing", "webhooks_stripe"),
            "/api/v1/request-demo": ("demo", "request_demo"),
            "/api/v1/health": ("system", "health"),
            "/api/v1/something-new": ("other", "something_new"),
        }
        for path, expected in cases.items():
            with self.subTest(path=path):
                self.assertEqual(tuple(classify_api_request(path)), expected)

    def test_dynamic_ids_are_collapsed(self):
        self.assertEqual(
            classify_api_request("/api/v1/hiring-sessions/clx9a8b7c6d5e4f3/messages").api_name,
            "hiring_sessions_id_messages",
        )
        # long segments collapse whether or not they carry digits
        paths = [
            "/api/v1/billing/subscription",
            "/api/v1/admin/users/5/cancel-subscription",
            "/api/v1/abcdefghijklmnop",
        ]
        self.assertEqual(
            [classify_api_request(path).api_name for path in paths],
            ["billing_id", "admin_users_id_id", "id"],
        )

    def test_query_string_and_root(self):
        self.assertEqual(classify_api_request("/api/v1/usage?page=2").api_name, "usage")
        self.assertEqual(classify_api_request("/api/").api_name, "root")


class RequestContextTest(TestCase):

    def tearDown(self):
        context.end_request()

    def test_llm_calls_accumulate(self):
        context.start_request("req_test")
        context.record_llm_call("openai", "gpt-4o", prompt_tokens=100, completion_tokens=20, cost="0.0015", duration_ms=800)
        context.record_llm_call("kimi", "k2", prompt_tokens=50, completion_tokens=5, cost=0.001)

        snapshot = context.get_request_context().snapshot()
        self.assertEqual(snapshot["llm_calls"], 2)
        self.assertEqual(snapshot["prompt_tokens"], 150)
        self.assertEqual(snapshot["total_tokens"], 175)
        self.assertEqual(snapshot["cost"], Decimal("0.0025"))
        self.assertEqual((snapshot["provider"], snapshot["model"]), ("kimi", "k2"))

    def test_calls_outside_a_request_are_ignored(self):
        self.assertIsNone(context.record_llm_call("openai", "gpt-4o", 1, 1))

    def test_log_filter_adds_request_id(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        context.RequestIdLogFilter().filter(record)
        self.assertEqual(record.request_id, "-")

        context.start_request("req_abc")
        context.RequestIdLogFilter().filter(record)
        self.assertEqual(record.request_id, "req_abc")

    def test_generated_ids(self):
        request_id = context.generate_request_id()
        self.assertTrue(request_id.startswith("req_"))
        self.assertNotEqual(request_id, context.generate_request_id())


class MiddlewareTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_request_id_is_echoed(self):
        response = self.client.get("/api/v1/usage", HTTP_X_REQUEST_ID="  client-id-1  ")
        self.assertEqual(response["X-Request-Id"], "client-id-1")

    def test_request_id_is_generated_and_trimmed(self):
        self.assertTrue(self.client.get("/api/v1/usage")["X-Request-Id"].startswith("req_"))
        long_id = "x" * 300
        self.assertEqual(len(self.client.get("/api/v1/usage", HTTP_X_REQUEST_ID=long_id)["X-Request-Id"]), 128)

    def test_api_requests_are_logged(self):
        user = User.objects.create_user(username="u@example.com", email="u@example.com")
        api_key = APIKey.objects.create(user=user, name="svc")
        response = self.client.get(
            "/api/v1/usage/summary", HTTP_X_API_KEY=api_key.key,
            HTTP_X_FORWARDED_FOR="203.0.113.9, 10.0.0.1", HTTP_USER_AGENT="pytest",
        )
        self.assertEqual(response.status_code, 200)

        row = ApiRequestLog.objects.get()
        self.assertEqual(row.user, user)
        self.assertEqual(row.api_key_id, api_key.pk)
        self.assertEqual((row.module, row.api_name), ("usage", "usage_summary"))
        self.assertEqual(row.status_code, 200)
        self.assertEqual(row.ip_address, "203.0.113.9")
        self.assertEqual(row.user_agent, "pytest")
        self.assertEqual(row.request_id, response["X-Request-Id"])
        self.assertFalse(row.is_tracked)

    def test_failed_requests_are_logged_anonymously(self):
        self.client.get("/api/v1/usage")
        row = ApiRequestLog.objects.get()
        self.assertEqual(row.status_code, 401)
        self.assertIsNone(row.user)

    def test_non_api_paths_are_not_logged(self):
        self.client.get("/admin/login/")
        self.assertFalse(ApiRequestLog.objects.exists())

    def test_persistence_failure_does_not_break_response(self):
        factory = RequestFactory()
        request = factory.get("/api/v1/health")
        response = HttpResponse("ok")
        middleware = RequestIdMiddleware(RequestAuditMiddleware(lambda r: response))
        with mock.patch.object(ApiRequestLog.objects, "create", side_effect=DatabaseError("gone")):
            result = middleware(request)
        self.assertIs(result, response)

    def test_client_ip(self):
        factory = RequestFactory()
        self.assertEqual(get_client_ip(factory.get("/", REMOTE_ADDR="198.51.100.2")), "198.51.100.2")
        self.assertEqual(get_client_ip(factory.get("/", HTTP_X_FORWARDED_FOR="192.0.2.1")), "192.0.2.1")


@override_settings(ROOT_URLCONF="usage.tests")
class TrackedUsageTest(TestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="t@example.com", email="t@example.com")
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_only_product_calls_reach_the_usage_views(self):
        response = self.client.post("/api/v1/match-resume", {}, format="json")
        self.assertEqual(response.status_code, 200)
        # dashboard polling is logged but never reported back as usage
        self.client.get("/api/v1/usage")
        self.client.get("/api/v1/usage/by-key")

        data = self.client.get("/api/v1/usage").json()["data"]
        self.assertEqual([row["endpoint"] for row in data["results"]], ["/api/v1/match-resume"])
        totals = self.client.get("/api/v1/usage/summary").json()["data"]["totals"]
        self.assertEqual((totals["calls"], totals["total_tokens"]), (1, 165))
        by_key = self.client.get("/api/v1/usage/by-key").json()["data"]
        self.assertEqual([row["calls"] for row in by_key], [1])

        self.assertEqual(ApiRequestLog.objects.filter(user=self.user).count(), 6)
        self.assertEqual(ApiRequestLog.objects.filter(is_tracked=True).count(), 1)

    def test_anonymous_calls_are_not_tracked(self):
        response = APIClient().post("/api/v1/match-resume", {}, format="json")
        self.assertEqual(response.status_code, 401)
        row = ApiRequestLog.objects.get()
        self.assertIsNone(row.user)
        self.assertFalse(row.is_tracked)

    def test_each_llm_call_is_stored(self):
        response = self.client.post("/api/v1/match-resume", {}, format="json")
        log = ApiRequestLog.objects.get()
        self.assertEqual((log.llm_calls, log.total_tokens, log.provider), (2, 165, "kimi"))

        calls = list(log.llm_call_logs.order_by("id"))
        self.assertEqual([(call.provider, call.model) for call in calls],
                         [("openai", "gpt-4o"), ("kimi", "moonshot-v1-8k")])
        self.assertEqual(calls[0].total_tokens, 150)
        self.assertEqual(calls[0].cost, Decimal("0.0021"))
        self.assertEqual(calls[0].module, "resume_match")
        self.assertEqual({call.request_id for call in calls}, {response["X-Request-Id"]})
        self.assertEqual(LLMCallLog.objects.filter(user=self.user).count(), 2)


class UsageAnalyticsTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username="a@example.com", email="a@example.com")
        self.user.profile.name = "Ada"
        self.user.profile.save()
        self.filters = parse_analytics_filters({
            "from": "2026-03-01T00:00:00Z", "to": "2026-03-31T23:59:59Z", "bucket": "week",
        })

        monday = datetime(2026, 3, 9, 10, 15, tzinfo=dt_timezone.utc)
        wednesday = datetime(2026, 3, 11, 8, 0, tzinfo=dt_timezone.utc)
        log_at(monday, user=self.user, duration_ms=100, total_tokens=500, llm_calls=1, cost=Decimal("0.01"),
               provider="openai", model="gpt-4o")
        log_at(wednesday, user=self.user, duration_ms=201, status_code=500, total_tokens=100, llm_calls=1,
               cost=Decimal("0.02"), provider="openai", model="gpt-4o-mini")
        log_at(wednesday, endpoint="/api/v1/evaluate-interview", module="interview_evaluation",
               api_name="evaluate_interview", duration_ms=1000, llm_calls=1, total_tokens=900, provider="kimi")
        log_at(datetime(2026, 4, 2, tzinfo=dt_timezone.utc), user=self.user)

    def test_filter_parsing(self):
        with self.assertRaisesMessage(ValueError, "Invalid from/to date format"):
            parse_analytics_filters({"from": "yesterday"})
        with self.assertRaisesMessage(ValueError, "bucket must be one of: hour, day, week"):
            parse_analytics_filters({"bucket": "month"})

        filters = parse_analytics_filters({"from": "2026-03-01", "userId": "7"})
        self.assertEqual(filters["from"], datetime(2026, 3, 1, tzinfo=dt_timezone.utc))
        self.assertEqual(filters["user_id"], "7")
        self.assertEqual(filters["bucket"], "day")

    def test_bucket_keys(self):
        moment = datetime(2026, 3, 11, 8, 45, tzinfo=dt_timezone.utc)
        self.assertEqual(bucket_key(moment, "hour"), "2026-03-11T08:00")
        self.assertEqual(bucket_key(moment, "day"), "2026-03-11")
        self.assertEqual(bucket_key(moment, "week"), "2026-03-09")

    def test_totals_and_workflow(self):
        data = build_usage_analytics(self.filters)
        totals = data["totals"]
        self.assertEqual(totals["calls"], 3)
        self.assertEqual(totals["unique_users"], 1)
        self.assertEqual(totals["llm_calls"], 3)
        self.assertEqual(totals["error_count"], 1)
        self.assertAlmostEqual(totals["error_rate"], 1 / 3)
        self.assertEqual(totals["avg_latency_ms"], 434)
        self.assertEqual(totals["resume_match_calls"], 2)
        self.assertEqual(totals["interview_calls"], 1)

        self.assertEqual(data["workflow"]["resume_match"]["avg_latency_ms"], 151)
        self.assertEqual(data["workflow"]["resume_match"]["error_rate"], 0.5)
        self.assertEqual(data["workflow"]["interview"]["total_tokens"], 900)

    def test_series(self):
        data = build_usage_analytics(self.filters)
        self.assertEqual([row["date"] for row in data["by_day"]], ["2026-03-09", "2026-03-11"])
        self.assertEqual(len(data["by_period"]), 1)
        self.assertEqual(data["by_period"][0]["period"], "2026-03-09")
        self.assertEqual(data["by_period"][0]["calls"], 3)

    def test_rankings(self):
        data = build_usage_analytics(self.filters)
        self.assertEqual(data["by_user"][0]["email"], "a@example.com")
        self.assertEqual(data["by_user"][0]["name"], "Ada")
        self.assertEqual(data["by_user"][1]["email"], "Anonymous / Unauthenticated")
        self.assertEqual(data["by_module"][0]["module"], "resume_match")
        self.assertEqual([row["api_name"] for row in data["by_interview"]], ["evaluate_interview"])
        self.assertEqual(data["by_provider"][0], {
            "provider": "openai", "calls": 2, "llm_calls": 2, "total_tokens": 600, "cost": 0.03,
        })
        self.assertEqual({row["model"] for row in data["by_model"]}, {"gpt-4o", "gpt-4o-mini"})

    def test_filters_narrow_results(self):
        filters = dict(self.filters, module="interview_evaluation")
        self.assertEqual(build_usage_analytics(filters)["totals"]["calls"], 1)
        filters = dict(self.filters, user_id=str(self.user.pk))
        self.assertEqual(build_usage_analytics(filters)["totals"]["calls"], 2)
        filters = dict(self.filters, endpoint="EVALUATE")
        self.assertEqual(build_usage_analytics(filters)["totals"]["calls"], 1)

    def test_empty_window(self):
        filters = parse_analytics_filters({"from": "2020-01-01", "to": "2020-01-02"})
        data = build_usage_analytics(filters)
        self.assertEqual(data["totals"]["calls"], 0)
        self.assertEqual(data["totals"]["error_rate"], 0)
        self.assertEqual(data["workflow"]["interview"]["avg_latency_ms"], 0)
        self.assertEqual(data["by_day"], [])


class UsageEndpointsTest(TestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="me@example.com", email="me@example.com")
        self.key = APIKey.objects.create(user=self.user, name="Production")
        self.client = APIClient()
        self.client.force_authenticate(self.user)

        day_one = datetime(2026, 5, 1, 9, tzinfo=dt_timezone.utc)
        day_two = datetime(2026, 5, 2, 9, tzinfo=dt_timezone.utc)
        log_at(day_one, user=self.user, api_key=self.key, prompt_tokens=10, completion_tokens=5, total_tokens=15,
               cost=Decimal("0.5"))
        log_at(day_two, user=self.user, api_key=self.key, endpoint="/api/v1/parse-resume", total_tokens=30)
        log_at(day_two + timedelta(hours=1), user=self.user, total_tokens=1)
        other = User.objects.create_user(username="other@example.com", email="other@example.com")
        log_at(day_two, user=other, total_tokens=999)

    def test_list_is_scoped_and_filtered(self):
        data = self.client.get("/api/v1/usage").json()["data"]
        self.assertEqual(data["pagination"]["count"], 3)
        self.assertEqual(data["results"][0]["api_key"], None)

        data = self.client.get("/api/v1/usage", {"endpoint": "parse"}).json()["data"]
        self.assertEqual(data["pagination"]["count"], 1)
        self.assertEqual(data["results"][0]["api_key"]["name"], "Production")

        data = self.client.get("/api/v1/usage", {"from": "2026-05-02", "to": "2026-05-31"}).json()["data"]
        self.assertEqual(data["pagination"]["count"], 2)

    def test_list_limit_is_capped(self):
        data = self.client.get("/api/v1/usage", {"limit": 1000}).json()["data"]
        self.assertEqual(data["pagination"]["limit"], 200)

    def test_bad_dates(self):
        response = self.client.get("/api/v1/usage/summary", {"to": "not-a-date"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_summary(self):
        data = self.client.get("/api/v1/usage/summary").json()["data"]
        self.assertEqual(data["totals"]["calls"], 3)
        self.assertEqual(data["totals"]["total_tokens"], 46)
        self.assertEqual([row["date"] for row in data["daily"]], ["2026-05-01", "2026-05-02"])
        self.assertEqual(data["by_endpoint"][0], {
            "endpoint": "/api/v1/match-resume", "calls": 2, "total_tokens": 16, "cost": 0.5,
        })

    def test_by_key_labels(self):
        gone = APIKey.objects.create(user=self.user, name="Old")
        log_at(datetime(2026, 5, 3, tzinfo=dt_timezone.utc), user=self.user, api_key=gone)
        gone.delete()

        rows = {row["key_name"]: row for row in self.client.get("/api/v1/usage/by-key").json()["data"]}
        self.assertEqual(rows["Production"]["calls"], 2)
        self.assertEqual(rows["Production"]["key_prefix"], self.key.prefix)
        self.assertEqual(rows["Session (Web App)"]["calls"], 1)
        self.assertEqual(rows["Deleted Key"]["calls"], 1)
        self.assertIsNone(rows["Deleted Key"]["key_prefix"])
