"""Domain models, ports and services for the paella order desk.

This module contains the dataclasses used for clients, paellas and staff
sessions, protocol definitions (ports) for the external collaborators (the
hosted order store, the session provider and the print relay), and the
domain services that drive them. Services do no I/O of their own; every
read or write goes through a port.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, List, Optional

from .notes_codec import OrderAnnotation

logger = logging.getLogger(__name__)

DEFAULT_DEPOSIT = 10
DEFAULT_RICE_TYPE = "Mixta"


# ---- Enums ----
class ClientStatus(str, Enum):
    """Coarse status of a client. Values are the ones stored in ``clients.status``."""

    PENDING = "pendiente"
    DELIVERED = "entregado"
    RETURNED = "devuelto"


class PaellaStatus(str, Enum):
    """Lifecycle of a single paella order.

    pending -> cooking -> ready -> delivered -> returned. Values are the ones
    stored in ``paellas.status``.
    """

    PENDING = "pendiente"
    COOKING = "cocinando"
    READY = "lista"
    DELIVERED = "entregada"
    RETURNED = "devuelta"


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "empleado"


# ---- Entities / DTOs ----
@dataclass
class Paella:
    """A paella order as read from the store, with its notes decoded.

    Attributes:
        id: Store identifier (UUID string).
        client_id: Identifier of the owning client.
        servings: Number of people, at least 2.
        rice_type: Rice label such as ``Mixta``, or None.
        status: Current ``PaellaStatus``.
        annotation: Free text, deposit and price decoded from ``notes``.
    """

    id: str
    client_id: str
    servings: int
    rice_type: str | None = DEFAULT_RICE_TYPE
    status: PaellaStatus = PaellaStatus.PENDING
    annotation: OrderAnnotation = field(default_factory=OrderAnnotation)
    scheduled_for: str | None = None
    created_at: str | None = None


@dataclass
class Client:
    """A client and the paellas ordered by them."""

    id: str
    first_name: str
    last_name: str
    phone: str | None = None
    notes: str | None = None
    status: ClientStatus = ClientStatus.PENDING
    created_at: str | None = None
    paellas: List[Paella] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def total_deposit(self) -> float:
        return sum(p.annotation.deposit for p in self.paellas if p.annotation.deposit is not None)

    @property
    def total_price(self) -> float:
        return sum(p.annotation.price for p in self.paellas if p.annotation.price is not None)

    @property
    def progress(self) -> PaellaStatus:
        """Pending while any paella is pending, delivered otherwise."""
        if any(p.status == PaellaStatus.PENDING for p in self.paellas):
            return PaellaStatus.PENDING
        return PaellaStatus.DELIVERED


@dataclass(frozen=True)
class ClientDraft:
    """Editable client fields, used both to register and to update."""

    first_name: str
    last_name: str
    phone: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaellaDraft:
    """Editable paella fields. ``id`` is set only when updating an existing paella."""

    servings: int
    rice_type: str | None = DEFAULT_RICE_TYPE
    annotation: OrderAnnotation = field(default_factory=OrderAnnotation)
    id: str | None = None


@dataclass
class DashboardSummary:
    total_clients: int = 0
    total_paellas: int = 0
    active_paellas: int = 0
    pending_clients: int = 0
    total_deposit: float = 0
    clients_by_status: dict = field(default_factory=dict)
    paellas_by_status: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AuthSession:
    """Tokens returned by the session provider after a password sign-in."""

    access_token: str
    refresh_token: str | None
    expires_in: int | None
    user_id: str
    email: str | None


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None = None


@dataclass(frozen=True)
class Profile:
    id: str
    role: Role | None = None
    full_name: str | None = None


@dataclass
class SessionUser:
    """The authenticated staff member attached to ``request.user``.

    Exposes the attributes DRF permission and throttle classes look at
    (``is_authenticated`` and ``pk``).
    """

    id: str
    email: str | None = None
    role: Role | None = None
    full_name: str | None = None
    access_token: str | None = None
    is_authenticated: bool = True

    @property
    def pk(self) -> str:
        return self.id

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# ---- Ports (DIP) ----
class OrderStorePort(Protocol):
    """Port describing the row-oriented hosted data store.

    Rows are plain dicts. Filters are equality filters on columns.
    ``embed`` names a child table whose rows (linked by ``<table>_id``
    foreign key, e.g. ``paellas.client_id``) are attached to each parent row
    under the child table name.
    """

    def select(self, table: str, *, filters: Optional[dict] = None, order_by: str | None = None,
               descending: bool = False, embed: str | None = None) -> List[dict]:
        raise NotImplementedError()

    def insert(self, table: str, rows: List[dict]) -> List[dict]:
        raise NotImplementedError()

    def update(self, table: str, values: dict, *, filters: dict) -> List[dict]:
        raise NotImplementedError()

    def delete(self, table: str, *, filters: dict) -> int:
        raise NotImplementedError()


class AuthPort(Protocol):
    """Port describing the session provider (password sign-in and admin user creation)."""

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Exchange credentials for a session.

        Raises:
            ValueError: ``INVALID_CREDENTIALS`` when the provider refuses them.
        """
        raise NotImplementedError()

    def get_user(self, access_token: str) -> AuthUser | None:
        raise NotImplementedError()

    def sign_out(self, access_token: str) -> None:
        raise NotImplementedError()

    def create_user(self, email: str, password: str, metadata: dict) -> str:
        """Create a confirmed user and return its id.

        Raises:
            ValueError: ``USER_NOT_CREATED`` when the provider refuses.
        """
        raise NotImplementedError()


class PrintRelayPort(Protocol):
    """Port describing the ticket printer relay. Returns True when the ticket was accepted."""

    def print_ticket(self, ticket: dict) -> bool:
        raise NotImplementedError()


# ---- Domain services ----
def filter_clients(clients: List[Client], search: str = "", status: str | None = None) -> List[Client]:
    """Filter clients in memory by name/phone search and client status.

    Args:
        clients: Clients to filter.
        search: Case-insensitive text matched against ``"first last"`` and
            the phone number. Surrounding whitespace is ignored.
        status: A ``ClientStatus`` value, or None/``"todos"`` for all.

    Returns:
        The matching clients, in their original order.
    """
    needle = (search or "").strip().lower()
    out = []
    for c in clients:
        full_name = f"{c.first_name} {c.last_name}".lower()
        phone = (c.phone or "").lower()
        matches_search = not needle or needle in full_name or needle in phone
        matches_status = not status or status == "todos" or c.status == status
        if matches_search and matches_status:
            out.append(c)
    return out


class ClientService:
    """Domain service for clients and their paella orders.

    Multi-row edits are sent as independent sequential requests. The store
    offers no transaction across them, so a failure partway leaves the rows
    written so far in place; the error is logged and propagated.
    """

    def __init__(self, repository, printer: PrintRelayPort):
        """Initialize the service with required dependencies.

        Args:
            repository: ``ClientRepository`` wrapping an ``OrderStorePort``.
            printer: ``PrintRelayPort`` used for tickets.
        """
        self.repository = repository
        self.printer = printer

    def list_clients(self, search: str = "", status: str | None = None) -> List[Client]:
        return filter_clients(self.repository.list_clients(), search, status)

    def summary(self, clients: List[Client]) -> DashboardSummary:
        """Compute the dashboard counters for a list of clients."""
        out = DashboardSummary(total_clients=len(clients))
        for c in clients:
            out.clients_by_status[c.status.value] = out.clients_by_status.get(c.status.value, 0) + 1
            out.total_deposit += c.total_deposit
            for p in c.paellas:
                out.total_paellas += 1
                out.paellas_by_status[p.status.value] = out.paellas_by_status.get(p.status.value, 0) + 1
        out.active_paellas = (
            out.paellas_by_status.get(PaellaStatus.PENDING.value, 0)
            + out.paellas_by_status.get(PaellaStatus.COOKING.value, 0)
        )
        out.pending_clients = out.clients_by_status.get(ClientStatus.PENDING.value, 0)
        return out

    def get_client(self, client_id: str) -> Client:
        """Fetch one client with paellas.

        Raises:
            ValueError: ``NOT_FOUND`` when the client does not exist.
        """
        client = self.repository.get_client(client_id)
        if client is None:
            raise ValueError("NOT_FOUND")
        return client

    def register_client(self, draft: ClientDraft, paellas: List[PaellaDraft]) -> Client:
        """Create a pending client and its pending paellas.

        The client row is inserted first, then the paella rows in one
        request. If the second request fails the client row stays.

        Raises:
            ValueError: ``EMPTY_ORDER`` when no paella is given.
        """
        if not paellas:
            raise ValueError("EMPTY_ORDER")

        client = self.repository.insert_client(draft, ClientStatus.PENDING)
        try:
            client.paellas = self.repository.insert_paellas(client.id, paellas)
        except Exception:
            logger.exception("paellas not stored for new client", extra={"client_id": client.id})
            raise
        logger.info("client registered", extra={"client_id": client.id, "paellas": len(client.paellas)})
        return client

    def update_client(self, client_id: str, draft: ClientDraft, paellas: List[PaellaDraft]) -> Client:
        """Update a client and the listed paellas, then return the fresh state.

        Each paella annotation is replaced wholesale. Paellas not listed are
        left untouched.

        Raises:
            ValueError: ``NOT_FOUND`` for an unknown client, ``UNKNOWN_PAELLA``
                when a listed paella does not belong to the client. Both are
                checked before anything is written.
        """
        current = self.get_client(client_id)
        owned = {p.id for p in current.paellas}
        if any(p.id not in owned for p in paellas):
            raise ValueError("UNKNOWN_PAELLA")

        self.repository.update_client(client_id, draft)
        done = 0
        for p in paellas:
            try:
                self.repository.update_paella(p.id, p)
            except Exception:
                logger.error(
                    "client partially updated",
                    extra={"client_id": client_id, "paellas_updated": done, "paellas_total": len(paellas)},
                )
                raise
            done += 1
        logger.info("client updated", extra={"client_id": client_id, "paellas_updated": done})
        return self.get_client(client_id)

    def delete_client(self, client_id: str) -> None:
        self.repository.delete_client(client_id)
        logger.info("client deleted", extra={"client_id": client_id})

    def set_client_status(self, client_id: str, status: ClientStatus) -> Client:
        if not self.repository.update_client_status(client_id, status):
            raise ValueError("NOT_FOUND")
        return self.get_client(client_id)

    def set_paella_status(self, paella_id: str, status: PaellaStatus) -> Paella:
        paella = self.repository.update_paella_status(paella_id, status)
        if paella is None:
            raise ValueError("NOT_FOUND")
        return paella

    def set_all_paellas_status(self, client_id: str, status: PaellaStatus) -> Client:
        """Set the same status on every paella of a client (the deliver/pending toggle)."""
        client = self.get_client(client_id)
        self.repository.update_paellas_status_for_client(client.id, status)
        return self.get_client(client_id)

    def build_ticket(self, client: Client) -> dict:
        """Build the ticket summary sent to the print relay."""
        return {
            "reference": client.id,
            "client_name": client.full_name,
            "phone": client.phone,
            "lines": [
                {
                    "servings": p.servings,
                    "rice_type": p.rice_type,
                    "status": p.status.value,
                    "deposit": p.annotation.deposit,
                    "price": p.annotation.price,
                    "notes": p.annotation.notes,
                }
                for p in client.paellas
            ],
            "total_deposit": client.total_deposit,
            "total_price": client.total_price,
        }

    def print_ticket(self, client_id: str) -> bool:
        """Send the client's ticket to the print relay.

        Returns:
            bool: Whether the relay accepted the ticket. Relay failures
            are reported as False, never raised.
        """
        client = self.get_client(client_id)
        ok = self.printer.print_ticket(self.build_ticket(client))
        if not ok:
            logger.warning("ticket print failed", extra={"client_id": client_id})
        return ok


class AccountService:
    """Sign-in, session lookup and employee invitations.

    Args:
        auth: ``AuthPort`` for the session provider.
        repository: ``ClientRepository`` able to read and write ``profiles``.
    """

    def __init__(self, auth: AuthPort, repository):
        self.auth = auth
        self.repository = repository

    def sign_in(self, email: str, password: str) -> tuple[AuthSession, Profile | None]:
        session = self.auth.sign_in(email, password)
        return session, self.repository.get_profile(session.user_id)

    def sign_out(self, access_token: str) -> None:
        self.auth.sign_out(access_token)

    def current_user(self, access_token: str) -> SessionUser | None:
        """Resolve a bearer token to the staff member and their role.

        A user without a profile row is authenticated but has no role.
        """
        user = self.auth.get_user(access_token)
        if user is None:
            return None
        profile = self.repository.get_profile(user.id)
        return SessionUser(
            id=user.id,
            email=user.email,
            role=profile.role if profile else None,
            full_name=profile.full_name if profile else None,
            access_token=access_token,
        )

    def invite_employee(self, email: str, password: str, full_name: str | None = None) -> str:
        """Create a confirmed employee account and its profile.

        Returns:
            str: The new user id.

        Raises:
            ValueError: ``USER_NOT_CREATED`` when the session provider refuses.
        """
        user_id = self.auth.create_user(
            email, password, {"full_name": full_name, "role": Role.EMPLOYEE.value}
        )
        self.repository.insert_profile(user_id, Role.EMPLOYEE, full_name)
        logger.info("employee invited", extra={"user_id": user_id})
        return user_id
