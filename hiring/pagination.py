from auth_core.pagination import EnvelopeLimitOffsetPagination


class HiringRequestPagination(EnvelopeLimitOffsetPagination):
    default_limit = 20
    max_limit = 100


class CandidatePagination(EnvelopeLimitOffsetPagination):
    default_limit = 50
    max_limit = 200
