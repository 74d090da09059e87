"""In-process stub adapters for the order desk ports.

These stubs implement ``OrderStorePort``, ``AuthPort`` and
``PrintRelayPort`` without any network calls. They are intended for unit
tests and local development where deterministic behavior is useful and the
hosted backend is not required. State lives in memory for the life of the
instance.
"""

import copy
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .domain import AuthPort, AuthSession, AuthUser, OrderStorePort, PrintRelayPort


def _matches(row: dict, filters: Optional[dict]) -> bool:
    return all(str(row.get(k)) == str(v) for k, v in (filters or {}).items())


class InMemoryOrderStore(OrderStorePort):
    """Stub implementation of ``OrderStorePort`` backed by dicts.

    Rows get a UUID ``id`` and an ISO ``created_at`` when not supplied.
    Embedding follows the ``<singular parent>_id`` convention, so
    ``select("clients", embed="paellas")`` attaches the paellas whose
    ``client_id`` equals the client ``id``.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.tables: dict[str, List[dict]] = {}
        self._last = datetime.min.replace(tzinfo=timezone.utc)

    def _rows(self, table: str) -> List[dict]:
        return self.tables.setdefault(table, [])

    def select(self, table, *, filters=None, order_by=None, descending=False, embed=None):
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._rows(table) if _matches(r, filters)]
            if order_by:
                rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""), reverse=descending)
            if embed:
                fk = f"{table.rstrip('s')}_id"
                for r in rows:
                    r[embed] = [copy.deepcopy(c) for c in self._rows(embed) if c.get(fk) == r["id"]]
            return rows

    def insert(self, table, rows):
        out = []
        with self._lock:
            for row in rows:
                # created_at strictly increases so ordering by it is deterministic
                self._last = max(datetime.now(timezone.utc), self._last + timedelta(microseconds=1))
                stored = {
                    "id": str(uuid.uuid4()),
                    "created_at": self._last.isoformat(timespec="microseconds"),
                    **row,
                }
                self._rows(table).append(stored)
                out.append(copy.deepcopy(stored))
        return out

    def update(self, table, values, *, filters):
        out = []
        with self._lock:
            for row in self._rows(table):
                if _matches(row, filters):
                    row.update(values)
                    out.append(copy.deepcopy(row))
        return out

    def delete(self, table, *, filters):
        with self._lock:
            rows = self._rows(table)
            keep = [r for r in rows if not _matches(r, filters)]
            removed = len(rows) - len(keep)
            self.tables[table] = keep
            return removed


class AuthStub(AuthPort):
    """Stub implementation of ``AuthPort``.

    Users are kept in a dict keyed by email; each sign-in issues a random
    opaque access token which stays valid until ``sign_out``.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.users: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}

    def create_user(self, email, password, metadata):
        with self._lock:
            if not email or not password or email.lower() in self.users:
                raise ValueError("USER_NOT_CREATED")
            user_id = str(uuid.uuid4())
            self.users[email.lower()] = {
                "id": user_id, "email": email, "password": password, "metadata": dict(metadata or {}),
            }
            return user_id

    def sign_in(self, email, password):
        with self._lock:
            user = self.users.get((email or "").lower())
            if not user or user["password"] != password:
                raise ValueError("INVALID_CREDENTIALS")
            token = uuid.uuid4().hex
            self.tokens[token] = user["id"]
            return AuthSession(
                access_token=token, refresh_token=uuid.uuid4().hex, expires_in=3600,
                user_id=user["id"], email=user["email"],
            )

    def get_user(self, access_token):
        with self._lock:
            user_id = self.tokens.get(access_token)
            if not user_id:
                return None
            email = next((u["email"] for u in self.users.values() if u["id"] == user_id), None)
            return AuthUser(id=user_id, email=email)

    def sign_out(self, access_token):
        with self._lock:
            self.tokens.pop(access_token, None)


class PrintRelayStub(PrintRelayPort):
    """Stub implementation of ``PrintRelayPort`` that records tickets and accepts them all."""

    def __init__(self):
        self.tickets: List[dict] = []

    def print_ticket(self, ticket):
        self.tickets.append(ticket)
        return True
