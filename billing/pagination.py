from auth_core.pagination import EnvelopePagination


class TopUpPagination(EnvelopePagination):
    page_size = 10
    max_page_size = 50
