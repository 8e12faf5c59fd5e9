import re
from typing import NamedTuple


class ApiClassification(NamedTuple):
    module: str
    api_name: str


# (match kind, needles, module), first match wins
MODULE_RULES = (
    ("prefix", ("/api/auth",), "auth"),
    ("prefix", ("/api/v1/admin",), "admin"),
    ("prefix", ("/api/v1/usage",), "usage"),
    ("prefix", ("/api/v1/api-keys",), "api_keys"),
    ("prefix", ("/api/v1/hiring-chat",), "hiring_chat"),
    ("prefix", ("/api/v1/hiring-sessions",), "hiring_sessions"),
    ("contains", ("/hiring-requests/title-suggestion",), "hiring_title_suggestion"),
    ("contains", ("/hiring-requests/jd-draft",), "hiring_jd_draft"),
    ("prefix", ("/api/v1/hiring-requests",), "hiring_requests"),
    ("contains", ("/match-resume",), "resume_match"),
    ("contains", ("/evaluate-interview",), "interview_evaluation"),
    ("contains", ("/invite-candidate", "/batch-invite"), "interview_invite"),
    ("contains", ("/parse-resume",), "resume_parse"),
    ("contains", ("/parse-jd",), "jd_parse"),
    ("contains", ("/extract-document",), "document_extract"),
    ("contains", ("/format-resume",), "resume_format"),
    ("contains", ("/format-jd",), "jd_format"),
    ("contains", ("/checkout", "/topup", "/billing", "/webhooks/stripe"), "billing"),
    ("contains", ("/request-demo",), "demo"),
    ("contains", ("/health", "/stats", "/logs"), "system"),
)
DEFAULT_MODULE = "other"

LONG_ALNUM = re.compile(r"^[a-z0-9]{12,}$", re.IGNORECASE)
LONG_SLUG = re.compile(r"^[a-z0-9_-]{16,}$", re.IGNORECASE)


def _is_dynamic_id(segment: str) -> bool:
    # Long segments are treated as ids even when they are route words,
    # so names stay comparable with rows already in the log.
    return segment.isdigit() or bool(LONG_ALNUM.match(segment) or LONG_SLUG.match(segment))


def normalize_api_name(pathname: str) -> str:
    segments = []
    for segment in pathname.split("/"):
        segment = segment.strip()
        segments.append(":id" if segment and _is_dynamic_id(segment) else segment)
    path = "/".join(segments)

    path = re.sub(r"^/api/v\d+/", "", path)
    path = re.sub(r"^/api/auth/", "auth/", path)
    path = re.sub(r"^/api/", "", path)

    name = re.sub(r"[^a-zA-Z0-9_]", "_", path.replace("/", "_"))
    name = re.sub(r"_+", "_", name).strip("_").lower()
    return name or "root"


def classify_api_request(path: str) -> ApiClassification:
    """Map a request path to an analytics module and a low-cardinality API name."""
    pathname = path.split("?", 1)[0] or path
    api_name = normalize_api_name(pathname)

    for kind, needles, module in MODULE_RULES:
        if kind == "prefix":
            matched = any(pathname.startswith(needle) for needle in needles)
        else:
            matched = any(needle in pathname for needle in needles)
        if matched:
            return ApiClassification(module, api_name)

    return ApiClassification(DEFAULT_MODULE, api_name)
