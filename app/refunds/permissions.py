"""
Permission classes for the refunds API.

Most refund endpoints are open to guests (who identify themselves by the
email on the order), so ownership is enforced in the services through
RequestActor. The classes here only gate the admin-only endpoints.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsAdmin(permissions.BasePermission):
    """Allows access only to authenticated users with the admin role."""

    message = "Only administrators can perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "is_admin", False))
