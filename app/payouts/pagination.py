"""
Pagination classes for the payout admin API.

Payouts and chargebacks are listed most recent first with page-number
pagination, so admins can jump straight to a page of the review queue.
"""

from rest_framework.pagination import PageNumberPagination


class AdminPageNumberPagination(PageNumberPagination):
    """
    Page-number pagination for admin lists.

    Default: 20 records per page
    Maximum: 100 records per page

    Query parameters:
        page: Page number (1-based)
        page_size: Number of records (optional override)
    """

    page_size = 20
    max_page_size = 100
    page_size_query_param = "page_size"
