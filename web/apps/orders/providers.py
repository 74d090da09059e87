"""Service provider helpers for wiring the domain services with ports.

This module exposes small factory functions returning configured
``ClientService`` and ``AccountService`` instances. When
``settings.USE_HTTP_ADAPTERS`` is truthy the services use the HTTP clients
for the hosted backend and the print relay. Otherwise they share one set of
in-process stubs, kept at module level so data survives across requests in
tests and local development.
"""

from django.conf import settings

from .adapters import AuthStub, InMemoryOrderStore, PrintRelayStub
from .domain import AccountService, ClientService
from .http_adapters import HttpAuthClient, HttpOrderStore, HttpPrintRelay
from .notes_codec import NotesCodec
from .repository import ClientRepository

_stub_store = InMemoryOrderStore()
_stub_auth = AuthStub()
_stub_printer = PrintRelayStub()


def reset_stubs() -> None:
    """Drop every row, user and ticket held by the in-process stubs."""
    global _stub_store, _stub_auth, _stub_printer
    _stub_store = InMemoryOrderStore()
    _stub_auth = AuthStub()
    _stub_printer = PrintRelayStub()


def get_stubs() -> tuple[InMemoryOrderStore, AuthStub, PrintRelayStub]:
    return _stub_store, _stub_auth, _stub_printer


def _use_http() -> bool:
    return bool(getattr(settings, "USE_HTTP_ADAPTERS", True))


def get_notes_codec() -> NotesCodec:
    """Codec configured with ``settings.NOTES_LEGACY_KEYWORDS`` when set."""
    return NotesCodec(getattr(settings, "NOTES_LEGACY_KEYWORDS", None))


def get_repository(access_token: str | None = None, privileged: bool = False) -> ClientRepository:
    """Return a repository over the configured order store.

    Args:
        access_token: Bearer token of the signed-in user; the hosted store
            applies its row-level policies to it.
        privileged: Use the service-role key instead (profile lookups and
            employee invitations).
    """
    if _use_http():
        if privileged:
            store = HttpOrderStore(
                api_key=settings.ORDER_STORE_SERVICE_ROLE_KEY,
                access_token=settings.ORDER_STORE_SERVICE_ROLE_KEY,
            )
        else:
            store = HttpOrderStore(access_token=access_token)
    else:
        store = _stub_store
    return ClientRepository(store, get_notes_codec())


def get_client_service(access_token: str | None = None) -> ClientService:
    printer = HttpPrintRelay() if _use_http() else _stub_printer
    return ClientService(repository=get_repository(access_token), printer=printer)


def get_account_service() -> AccountService:
    """Account service; profile reads and writes run server-side with the service-role key."""
    auth = HttpAuthClient() if _use_http() else _stub_auth
    return AccountService(auth=auth, repository=get_repository(privileged=True))
