"""HTTP views for the orders app.

This module contains DRF API views for the paella order desk. Views are
kept intentionally small: they validate requests (via Pydantic), map to
domain drafts, delegate to the domain services, and return an HTTP
response.

The views obtain configured services from ``providers`` which return HTTP
adapter-backed ports (hosted data API, auth API, print relay) or in-process
stubs depending on runtime settings. This allows tests and local
development to swap implementations without changing view logic.

Errors: domain code raises ``ValueError`` with a short code, mapped to an
HTTP status by ``ERROR_STATUS``. Upstream failures (transport errors, 5xx
after retries, open circuits) become 503 ``UPSTREAM_UNAVAILABLE``.

Idempotency: when an ``Idempotency-Key`` header is provided, client
registration is processed once. Retries with the same payload return the
stored response with ``Idempotent-Replay: true``; the same key with a
different payload returns HTTP 409.
"""
import logging
from dataclasses import asdict

import httpx
from pydantic import ValidationError
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.throttling import ScopedRateThrottle

from . import providers
from .authentication import IsAdminProfile
from .domain import ClientStatus
from .idempotency import get_or_create_idempotent, finalize
from .schemas import (
    ClientReadDTO, ClientStatusDTO, CreateClientDTO, InviteEmployeeDTO, LoginDTO, PaellaReadDTO,
    PaellaStatusDTO, UpdateClientDTO,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "EMPTY_ORDER": status.HTTP_400_BAD_REQUEST,
    "UNKNOWN_PAELLA": status.HTTP_400_BAD_REQUEST,
    "FILTER_REQUIRED": status.HTTP_400_BAD_REQUEST,
    "INVALID_CREDENTIALS": status.HTTP_401_UNAUTHORIZED,
    "STORE_REJECTED": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "USER_NOT_CREATED": status.HTTP_422_UNPROCESSABLE_ENTITY,
}

UPSTREAM_ERRORS = (RuntimeError, httpx.HTTPError)


def error_body(exc: Exception) -> tuple[dict, int]:
    """Map a domain or upstream exception to ``(body, status_code)``."""
    if isinstance(exc, ValidationError):
        return {"detail": str(exc)}, status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ValueError):
        code = str(exc)
        return {"detail": code}, ERROR_STATUS.get(code, status.HTTP_400_BAD_REQUEST)
    logger.warning("upstream unavailable", extra={"error": str(exc)})
    return {"detail": "UPSTREAM_UNAVAILABLE"}, status.HTTP_503_SERVICE_UNAVAILABLE


def client_body(client) -> dict:
    return ClientReadDTO.from_domain(client).model_dump(mode="json")


class OrderDeskView(APIView):
    """Base view translating domain and upstream exceptions into JSON responses."""

    def handle_exception(self, exc):
        if isinstance(exc, (ValueError,) + UPSTREAM_ERRORS):
            body, code = error_body(exc)
            return Response(body, status=code)
        return super().handle_exception(exc)

    def client_service(self):
        return providers.get_client_service(self.request.auth)


# ---- Session ----
class LoginView(OrderDeskView):
    """Exchange email and password for a session token."""

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth_login"

    def post(self, request):
        dto = LoginDTO.model_validate(request.data)
        session, profile = providers.get_account_service().sign_in(dto.email, dto.password)
        return Response({
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expires_in": session.expires_in,
            "user": {
                "id": session.user_id,
                "email": session.email,
                "role": profile.role.value if profile and profile.role else None,
                "full_name": profile.full_name if profile else None,
            },
        })


class LogoutView(OrderDeskView):
    def post(self, request):
        providers.get_account_service().sign_out(request.auth)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(OrderDeskView):
    def get(self, request):
        u = request.user
        return Response({
            "id": u.id,
            "email": u.email,
            "role": u.role.value if u.role else None,
            "full_name": u.full_name,
        })


# ---- Clients ----
class ClientsCollectionView(OrderDeskView):
    """List clients (with search and status filter) or register a new one.

    Registration inserts the client, then its paellas, in two requests to
    the hosted store; there is no transaction across them.
    """
    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "clients_list" if self.request.method == "GET" else "clients_write"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        client_status = request.GET.get("status") or None
        if client_status and client_status != "todos" and client_status not in {s.value for s in ClientStatus}:
            return Response({"detail": "INVALID_STATUS"}, status=status.HTTP_400_BAD_REQUEST)

        clients = self.client_service().list_clients(request.GET.get("search", ""), client_status)
        results = [client_body(c) for c in clients]
        return Response({"count": len(results), "results": results}, status=200)

    def post(self, request):
        """Register a client with their paellas.

        Returns:
            Response: One of the following responses.
            - 201 with the created client.
            - 200 (or the stored status) with the cached body when the same
              idempotency key and payload are retried.
            - 409 with {detail: "IDEMPOTENCY_CONFLICT"} when the key is
              reused with a different payload.
            - 400 for DTO validation errors.
            - 422 with {detail: "STORE_REJECTED"} when the store refuses a row.
            - 503 with {detail: "UPSTREAM_UNAVAILABLE"} when the store is
              unavailable.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateClientDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                status_code = rec.response_status or status.HTTP_200_OK
                resp = Response(rec.response_body, status=status_code)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        try:
            client = self.client_service().register_client(
                dto.to_draft(), [p.to_draft() for p in dto.paellas]
            )
        except (ValueError,) + UPSTREAM_ERRORS as e:
            body, status_code = error_body(e)
            if rec:
                finalize(rec, status_code, body)
            return Response(body, status=status_code)

        body = client_body(client)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, client_id=client.id)
        return Response(body, status=status.HTTP_201_CREATED)


class ClientsSummaryView(OrderDeskView):
    """Dashboard counters over every client visible to the caller."""

    def get(self, request):
        service = self.client_service()
        return Response(asdict(service.summary(service.list_clients())))


class ClientDetailView(OrderDeskView):
    """Read a client; admins can also edit or delete it."""

    def get_permissions(self):
        if self.request.method in ("PUT", "DELETE"):
            return [IsAdminProfile()]
        return [IsAuthenticated()]

    def get(self, request, client_id: str):
        return Response(client_body(self.client_service().get_client(client_id)))

    def put(self, request, client_id: str):
        dto = UpdateClientDTO.model_validate(request.data)
        client = self.client_service().update_client(
            client_id, dto.to_draft(), [p.to_draft() for p in dto.paellas]
        )
        return Response(client_body(client))

    def delete(self, request, client_id: str):
        self.client_service().delete_client(client_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ClientStatusView(OrderDeskView):
    permission_classes = [IsAdminProfile]

    def patch(self, request, client_id: str):
        dto = ClientStatusDTO.model_validate(request.data)
        return Response(client_body(self.client_service().set_client_status(client_id, dto.status)))


class ClientPaellasStatusView(OrderDeskView):
    """Set one status on every paella of a client (mark all delivered / pending)."""

    def patch(self, request, client_id: str):
        dto = PaellaStatusDTO.model_validate(request.data)
        return Response(client_body(self.client_service().set_all_paellas_status(client_id, dto.status)))


class PaellaStatusView(OrderDeskView):
    permission_classes = [IsAdminProfile]

    def patch(self, request, paella_id: str):
        dto = PaellaStatusDTO.model_validate(request.data)
        paella = self.client_service().set_paella_status(paella_id, dto.status)
        return Response(PaellaReadDTO.from_domain(paella).model_dump(mode="json"))


class ClientTicketView(OrderDeskView):
    """Send the client's ticket to the print relay (best effort)."""

    def post(self, request, client_id: str):
        printed = self.client_service().print_ticket(client_id)
        return Response({"printed": printed})


# ---- Team ----
class InviteEmployeeView(OrderDeskView):
    """Create an employee account. Admins only."""

    permission_classes = [IsAdminProfile]

    def post(self, request):
        dto = InviteEmployeeDTO.model_validate(request.data)
        user_id = providers.get_account_service().invite_employee(dto.email, dto.password, dto.full_name)
        return Response({"id": user_id, "detail": "EMPLOYEE_CREATED"}, status=status.HTTP_201_CREATED)
