"""Bearer-token authentication and role permissions for the API.

Staff sign in against the hosted session provider and send the returned
access token as ``Authorization: Bearer <token>``. On every request the
token is resolved back to the user, and their role is read from the
``profiles`` table. The resulting ``SessionUser`` becomes ``request.user``.
"""

import logging

import httpx
from rest_framework import authentication, exceptions, permissions

from . import providers

logger = logging.getLogger(__name__)


class UpstreamUnavailable(exceptions.APIException):
    status_code = 503
    default_detail = "UPSTREAM_UNAVAILABLE"
    default_code = "upstream_unavailable"


class SessionTokenAuthentication(authentication.BaseAuthentication):
    """Resolve ``Authorization: Bearer`` tokens through the session provider.

    Requests without the header are left anonymous so permission classes
    decide; a header with an unknown or expired token fails with 401.
    """

    keyword = "Bearer"

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed("INVALID_SESSION")

        token = header[1].decode("latin-1")
        try:
            user = providers.get_account_service().current_user(token)
        except (RuntimeError, ValueError, httpx.HTTPError) as e:
            logger.warning("session provider unavailable", extra={"error": str(e)})
            raise UpstreamUnavailable()
        if user is None:
            raise exceptions.AuthenticationFailed("INVALID_SESSION")
        return user, token

    def authenticate_header(self, request):
        return self.keyword


class IsAdminProfile(permissions.BasePermission):
    """Allow only signed-in users whose profile role is ``admin``."""

    message = "ADMIN_ONLY"

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "is_admin", False))
