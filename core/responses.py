"""
Response envelopes shared by every API view.

Successful responses are wrapped as ``{"success": true, "message": ..., "data": ...}``.
Paginated listings put a page wrapper in ``data``:
``{"content": [...], "totalElements": n, "totalPages": n, "page": n, "size": n}``
with a zero-based ``page`` query parameter and a ``size`` parameter.
"""

import math
from typing import Any, Optional

from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.pagination import BasePagination
from rest_framework.response import Response

from .exceptions import ValidationFailure


def success_response(data: Any = None, message: Optional[str] = None,
                     status_code: int = status.HTTP_200_OK) -> Response:
    return Response(
        {
            'success': True,
            'message': str(message) if message is not None else None,
            'data': data,
        },
        status=status_code,
    )


class EnvelopePagination(BasePagination):
    """
    Zero-based page/size pagination.

    Out-of-range pages return an empty ``content`` list rather than a 404.
    """

    page_query_param = 'page'
    page_size_query_param = 'size'
    page_size = 20
    max_page_size = 100

    def _read_int(self, request, name: str, default: int, minimum: int) -> int:
        raw = request.query_params.get(name)
        if raw in (None, ''):
            return default
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise ValidationFailure(validation_errors=[f"{name}: must be an integer."])
        if value < minimum:
            raise ValidationFailure(validation_errors=[f"{name}: must be greater than or equal to {minimum}."])
        return value

    def paginate_queryset(self, queryset, request, view=None):
        self.request = request
        self.page = self._read_int(request, self.page_query_param, 0, 0)
        self.size = min(self._read_int(request, self.page_size_query_param, self.page_size, 1), self.max_page_size)
        self.count = queryset.count()
        start = self.page * self.size
        return list(queryset[start:start + self.size])

    def get_paginated_response(self, data):
        return success_response(self.page_payload(data), _('Page retrieved successfully.'))

    def page_payload(self, data) -> dict:
        return {
            'content': data,
            'totalElements': self.count,
            'totalPages': math.ceil(self.count / self.size) if self.count else 0,
            'page': self.page,
            'size': self.size,
        }

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'success': {'type': 'boolean'},
                'message': {'type': 'string', 'nullable': True},
                'data': {
                    'type': 'object',
                    'properties': {
                        'content': schema,
                        'totalElements': {'type': 'integer'},
                        'totalPages': {'type': 'integer'},
                        'page': {'type': 'integer'},
                        'size': {'type': 'integer'},
                    },
                },
            },
        }
