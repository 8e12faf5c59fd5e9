from auth_core.pagination import EnvelopePagination


class UsagePagination(EnvelopePagination):
    page_size = 50
    max_page_size = 200
