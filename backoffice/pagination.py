from auth_core.pagination import EnvelopePagination


class AdminUserPagination(EnvelopePagination):
    page_size = 20
    max_page_size = 100
