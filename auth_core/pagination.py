import math
from rest_framework.pagination import LimitOffsetPagination, PageNumberPagination
from rest_framework.response import Response


class EnvelopePagination(PageNumberPagination):
    """
    Page-number pagination that wraps results in the API envelope.
    Accepts ?page= and ?limit=.
    """
    page_size = 20
    page_size_query_param = "limit"
    max_page_size = 100

    def get_paginated_response(self, data):
        count = self.page.paginator.count
        page_size = self.get_page_size(self.request)
        current_page = self.page.number

        return Response({
            "success": True,
            "data": {
                "results": data,
                "pagination": {
                    "count": count,
                    "page": current_page,
                    "limit": page_size,
                    "pages": math.ceil(count / page_size) if page_size else 0,
                    "next": current_page + 1 if self.page.has_next() else None,
                    "previous": current_page - 1 if self.page.has_previous() else None,
                },
            },
        })


class EnvelopeLimitOffsetPagination(LimitOffsetPagination):
    """
    Limit/offset pagination for the list endpoints the web app pages through
    with ?limit= and ?offset=. Totals sit next to the data in the envelope.
    """
    default_limit = 20
    max_limit = 100

    def get_paginated_response(self, data):
        return Response({
            "success": True,
            "data": data,
            "pagination": {
                "total": self.count,
                "limit": self.limit,
                "offset": self.offset,
            },
        })
