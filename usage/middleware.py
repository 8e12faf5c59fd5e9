import logging
from django.db import DatabaseError, transaction
from auth_core.models import APIKey
from .classification import classify_api_request
from .context import end_request, generate_request_id, get_request_context, start_request
from .models import ApiRequestLog, LLMCallLog

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128


def get_client_ip(request):
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if ip:
            return ip
    return request.META.get("REMOTE_ADDR") or None


class RequestIdMiddleware:
    """
    Tags every request with an id, reusing the caller's X-Request-Id when it
    sends one, and echoes it back on the response.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        inbound = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        request_id = inbound[:MAX_REQUEST_ID_LENGTH] if inbound else generate_request_id()

        request.request_id = request_id
        start_request(request_id)
        try:
            response = self.get_response(request)
        finally:
            end_request()

        response[REQUEST_ID_HEADER] = request_id
        return response


class RequestAuditMiddleware:
    """
    Writes one ApiRequestLog row for every `/api/` request, plus one LLMCallLog
    row per LLM completion recorded while serving it. Rows for views that set
    `track_usage` and have an authenticated user are marked as tracked usage.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not request.path.startswith("/api/"):
            return self.get_response(request)

        response = self.get_response(request)
        self.persist(request, response)
        return response

    def process_view(self, request, view_func, view_args, view_kwargs):
        view_class = getattr(view_func, "view_class", None)
        request.track_usage = bool(getattr(view_class, "track_usage", False))

    def persist(self, request, response):
        context = get_request_context()
        snapshot = context.snapshot() if context else {}
        module, api_name = classify_api_request(request.path)

        user = getattr(request, "user", None)
        if user is not None and not user.is_authenticated:
            user = None
        api_key = getattr(request, "auth", None)
        request_id = getattr(request, "request_id", None)
        endpoint = request.path[:512]

        try:
            with transaction.atomic():
                log = ApiRequestLog.objects.create(
                    request_id=request_id,
                    user=user,
                    api_key=api_key if isinstance(api_key, APIKey) else None,
                    endpoint=endpoint,
                    method=request.method,
                    module=module,
                    api_name=api_name[:255],
                    status_code=response.status_code or 200,
                    duration_ms=snapshot.get("duration_ms", 0),
                    prompt_tokens=snapshot.get("prompt_tokens", 0),
                    completion_tokens=snapshot.get("completion_tokens", 0),
                    total_tokens=snapshot.get("total_tokens", 0),
                    llm_calls=snapshot.get("llm_calls", 0),
                    cost=snapshot.get("cost", 0),
                    provider=snapshot.get("provider"),
                    model=snapshot.get("model"),
                    ip_address=get_client_ip(request),
                    user_agent=request.META.get("HTTP_USER_AGENT") or None,
                    is_tracked=user is not None and getattr(request, "track_usage", False),
                )
                if context and context.llm_calls:
                    LLMCallLog.objects.bulk_create([
                        LLMCallLog(
                            request_log=log,
                            request_id=request_id,
                            user=user,
                            endpoint=endpoint,
                            module=module,
                            provider=call.provider,
                            model=call.model,
                            prompt_tokens=call.prompt_tokens,
                            completion_tokens=call.completion_tokens,
                            total_tokens=call.total_tokens,
                            cost=call.cost,
                            duration_ms=call.duration_ms,
                        )
                        for call in context.llm_calls
                    ])
        except DatabaseError:
            logger.exception("Failed to persist request audit log for %s %s", request.method, request.path)
