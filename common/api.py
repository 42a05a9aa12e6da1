"""Helpers for consistent JSON error bodies."""

from rest_framework.response import Response


def error_response(detail: str, code: str, status: int, **extra) -> Response:
    return Response({"detail": detail, "code": code, **extra}, status=status)
