"""Shared fixtures: in-process stubs, seeded staff accounts and auth headers."""
import pytest

ADMIN_EMAIL = "admin@paellas.test"
EMPLOYEE_EMAIL = "empleado@paellas.test"
PASSWORD = "secreto123"


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    from django.core.cache import cache
    from apps.orders import http_adapters, providers

    settings.USE_HTTP_ADAPTERS = False
    providers.reset_stubs()
    cache.clear()  # throttle counters
    http_adapters._store_cb.on_success()
    http_adapters._auth_cb.on_success()
    yield
    providers.reset_stubs()


@pytest.fixture
def stubs():
    """(store, auth, printer) currently wired by the providers."""
    from apps.orders import providers
    return providers.get_stubs()


def _seed_user(email: str, role: str, full_name: str) -> str:
    from apps.orders import providers

    store, auth, _ = providers.get_stubs()
    user_id = auth.create_user(email, PASSWORD, {"full_name": full_name, "role": role})
    store.insert("profiles", [{"id": user_id, "role": role, "full_name": full_name}])
    return auth.sign_in(email, PASSWORD).access_token


@pytest.fixture
def admin_headers():
    return {"HTTP_AUTHORIZATION": f"Bearer {_seed_user(ADMIN_EMAIL, 'admin', 'Lola Admin')}"}


@pytest.fixture
def employee_headers():
    return {"HTTP_AUTHORIZATION": f"Bearer {_seed_user(EMPLOYEE_EMAIL, 'empleado', 'Pepe Cocina')}"}
