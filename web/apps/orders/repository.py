"""Repository layer over the hosted order store.

This module maps rows of the ``clients``, ``paellas`` and ``profiles``
tables to the domain dataclasses and back. It keeps the domain services
free of table names, column names and of the ``notes`` encoding: paella
annotations are encoded and decoded here with a ``NotesCodec``.
"""

from typing import List

from .domain import (
    Client, ClientDraft, ClientStatus, Paella, PaellaDraft, PaellaStatus, Profile, Role, OrderStorePort,
)
from .notes_codec import NotesCodec, default_codec

CLIENTS = "clients"
PAELLAS = "paellas"
PROFILES = "profiles"


def _enum_or(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


class ClientRepository:
    """Repository that reads and writes clients and paellas through an ``OrderStorePort``.

    The repository returns domain objects (or None when a row is missing)
    so callers never handle raw rows.
    """

    def __init__(self, store: OrderStorePort, codec: NotesCodec | None = None):
        self.store = store
        self.codec = codec or default_codec

    # ---- row mapping ----
    def to_paella(self, row: dict) -> Paella:
        return Paella(
            id=str(row["id"]),
            client_id=str(row.get("client_id")),
            servings=int(row.get("servings") or 0),
            rice_type=row.get("rice_type"),
            status=_enum_or(PaellaStatus, row.get("status"), PaellaStatus.PENDING),
            annotation=self.codec.decode(row.get("notes")),
            scheduled_for=row.get("scheduled_for"),
            created_at=row.get("created_at"),
        )

    def to_client(self, row: dict) -> Client:
        return Client(
            id=str(row["id"]),
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            phone=row.get("phone"),
            notes=row.get("notes"),
            status=_enum_or(ClientStatus, row.get("status"), ClientStatus.PENDING),
            created_at=row.get("created_at"),
            paellas=[self.to_paella(p) for p in row.get(PAELLAS) or []],
        )

    def paella_row(self, draft: PaellaDraft) -> dict:
        return {
            "servings": draft.servings,
            "rice_type": draft.rice_type,
            "notes": self.codec.encode(draft.annotation),
        }

    @staticmethod
    def client_row(draft: ClientDraft) -> dict:
        return {
            "first_name": draft.first_name,
            "last_name": draft.last_name,
            "phone": draft.phone or None,
            "notes": draft.notes or None,
        }

    # ---- clients ----
    def list_clients(self) -> List[Client]:
        rows = self.store.select(CLIENTS, order_by="created_at", descending=True, embed=PAELLAS)
        return [self.to_client(r) for r in rows]

    def get_client(self, client_id: str) -> Client | None:
        rows = self.store.select(CLIENTS, filters={"id": client_id}, embed=PAELLAS)
        return self.to_client(rows[0]) if rows else None

    def insert_client(self, draft: ClientDraft, status: ClientStatus) -> Client:
        row = {**self.client_row(draft), "status": status.value}
        return self.to_client(self.store.insert(CLIENTS, [row])[0])

    def update_client(self, client_id: str, draft: ClientDraft) -> bool:
        return bool(self.store.update(CLIENTS, self.client_row(draft), filters={"id": client_id}))

    def update_client_status(self, client_id: str, status: ClientStatus) -> bool:
        return bool(self.store.update(CLIENTS, {"status": status.value}, filters={"id": client_id}))

    def delete_client(self, client_id: str) -> None:
        """Delete a client's paellas, then the client (two requests, in that order)."""
        self.store.delete(PAELLAS, filters={"client_id": client_id})
        self.store.delete(CLIENTS, filters={"id": client_id})

    # ---- paellas ----
    def insert_paellas(self, client_id: str, drafts: List[PaellaDraft]) -> List[Paella]:
        rows = [
            {**self.paella_row(d), "client_id": client_id, "status": PaellaStatus.PENDING.value}
            for d in drafts
        ]
        return [self.to_paella(r) for r in self.store.insert(PAELLAS, rows)]

    def update_paella(self, paella_id: str, draft: PaellaDraft) -> Paella | None:
        rows = self.store.update(PAELLAS, self.paella_row(draft), filters={"id": paella_id})
        return self.to_paella(rows[0]) if rows else None

    def update_paella_status(self, paella_id: str, status: PaellaStatus) -> Paella | None:
        rows = self.store.update(PAELLAS, {"status": status.value}, filters={"id": paella_id})
        return self.to_paella(rows[0]) if rows else None

    def update_paellas_status_for_client(self, client_id: str, status: PaellaStatus) -> int:
        return len(self.store.update(PAELLAS, {"status": status.value}, filters={"client_id": client_id}))

    # ---- profiles ----
    def get_profile(self, user_id: str) -> Profile | None:
        rows = self.store.select(PROFILES, filters={"id": user_id})
        if not rows:
            return None
        row = rows[0]
        return Profile(
            id=str(row["id"]),
            role=_enum_or(Role, row.get("role"), None),
            full_name=row.get("full_name"),
        )

    def insert_profile(self, user_id: str, role: Role, full_name: str | None = None) -> Profile:
        self.store.insert(PROFILES, [{"id": user_id, "role": role.value, "full_name": full_name}])
        return Profile(id=user_id, role=role, full_name=full_name)
