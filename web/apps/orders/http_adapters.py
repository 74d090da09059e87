"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements concrete HTTP clients for the domain ports using
``httpx``:

- ``HttpOrderStore``: the hosted PostgREST data API (``/rest/v1``) for the
    ``clients``, ``paellas`` and ``profiles`` tables. Requests carry the
    caller's access token so the backend applies its row-level policies.
- ``HttpAuthClient``: the hosted auth API (``/auth/v1``) for password
    sign-in, token lookup, sign-out and admin user creation.
- ``HttpPrintRelay``: the ticket printer relay, called once and never
    raising.

It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Circuit breaker per upstream (data API, auth API) to avoid hammering
    unhealthy dependencies, with HALF_OPEN probing after a timeout.
- Retry policy with exponential backoff for transport errors and 5xx, only
    for idempotent data API calls (GET, PATCH, DELETE). Inserts are sent once.
"""

import logging
import time
import threading
import sys
import os
from typing import List, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import AuthPort, AuthSession, AuthUser, OrderStorePort, PrintRelayPort

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger(__name__)


def _is_test_mode() -> bool:
    """True under pytest, where backoff sleeps are skipped."""
    return "pytest" in sys.modules or os.environ.get("PYTEST_CURRENT_TEST") is not None


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Per-upstream breaker: CLOSED, OPEN or HALF_OPEN.

    ``fail_threshold`` consecutive failures open it. After ``reset_timeout``
    seconds an open breaker lets one probe through (HALF_OPEN); the probe's
    success closes it and its failure opens it again. Thread-safe.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probing = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and time.monotonic() - self._opened_at >= self.reset_timeout:
                self._state, self._probing = "HALF_OPEN", False
            return self._state

    def before_call(self) -> str:
        """Admit a call and return the state it was admitted in.

        Raises:
            RuntimeError: ``CIRCUIT_OPEN``, or ``CIRCUIT_HALF_OPEN_BUSY`` while
                another probe is in flight.
        """
        with self._lock:
            current = self.state
            if current == "OPEN":
                raise RuntimeError("CIRCUIT_OPEN")
            if current == "HALF_OPEN":
                if self._probing:
                    raise RuntimeError("CIRCUIT_HALF_OPEN_BUSY")
                self._probing = True
            return current

    def on_success(self):
        with self._lock:
            self._failures, self._state, self._probing = 0, "CLOSED", False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            tripped = self._failures >= self.fail_threshold and self._state != "OPEN"
            if self._state == "HALF_OPEN" or tripped:
                self._state, self._opened_at, self._probing = "OPEN", time.monotonic(), False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probing = False


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


_store_cb = _breaker("order-store")
_auth_cb = _breaker("auth")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Headers for an outgoing call: ``X-Request-ID`` of the current request plus ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    headers.update(extra or {})
    return headers


def _retry_policy() -> tuple[int, float]:
    """``(max_retries, backoff_base_seconds)``; retries do not count the first attempt."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # transport errors and 5xx only
    return exc is not None or (resp is not None and resp.status_code >= 500)


def _eq_filters(filters: Optional[dict]) -> dict:
    return {col: f"eq.{value}" for col, value in (filters or {}).items()}


def _invalid_id(resp: httpx.Response) -> bool:
    """PostgREST 400 for a malformed uuid in a filter (Postgres ``22P02``)."""
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("code") == "22P02"


# ---------------- Order Store Adapter ---------------- #

class HttpOrderStore(OrderStorePort):
    """HTTP client for the hosted PostgREST data API with retry and circuit breaker.

    Args:
        base_url: Project URL; ``/rest/v1/<table>`` is appended per call.
        api_key: Project API key sent as ``apikey``.
        access_token: Bearer token of the signed-in user. Defaults to the
            API key, which the backend treats as an anonymous (or, for the
            service-role key, privileged) caller.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, base_url: str | None = None, api_key: str | None = None,
                 access_token: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.ORDER_STORE_URL).rstrip("/")
        self.api_key = api_key or settings.ORDER_STORE_ANON_KEY
        self.access_token = access_token or self.api_key
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def select(self, table, *, filters=None, order_by=None, descending=False, embed=None) -> List[dict]:
        params = {"select": f"*,{embed}(*)" if embed else "*"}
        params.update(_eq_filters(filters))
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        return self._send("GET", table, params=params)

    def insert(self, table, rows) -> List[dict]:
        return self._send("POST", table, json=rows, prefer="return=representation", retry=False)

    def update(self, table, values, *, filters) -> List[dict]:
        if not filters:
            raise ValueError("FILTER_REQUIRED")
        return self._send("PATCH", table, params=_eq_filters(filters), json=values, prefer="return=representation")

    def delete(self, table, *, filters) -> int:
        if not filters:
            raise ValueError("FILTER_REQUIRED")
        return len(self._send("DELETE", table, params=_eq_filters(filters), prefer="return=representation"))

    def _send(self, method: str, table: str, params: Optional[dict] = None, json=None,
              prefer: str | None = None, retry: bool = True):
        """Send one data API call, retrying idempotent calls on transport errors and 5xx.

        Maps responses:
        - 2xx → decoded JSON rows (empty list for 204)
        - 4xx → ``ValueError("STORE_REJECTED")``, not counted as a circuit failure

        Raises:
            ValueError: ``STORE_REJECTED`` when the store refuses the request.
            RuntimeError: When the circuit is open.
            httpx.RequestError: For network/transport errors after retries.
            httpx.HTTPStatusError: For 5xx after retries.
        """
        max_retries, backoff = _retry_policy()
        if not retry:
            max_retries = 0
        if _is_test_mode():
            backoff = 0.0
        tries = 0

        # CIRCUIT: precheck
        state = _store_cb.before_call()
        extras = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token}",
            "X-Circuit-State": state,
            "X-Retry-Count": "0",
        }
        if prefer:
            extras["Prefer"] = prefer
        headers = _request_headers(extras)
        url = f"{self.base_url}/rest/v1/{table}"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, url, params=params, json=json, headers=headers)
                        if 200 <= resp.status_code < 300:
                            _store_cb.on_success()
                            return [] if resp.status_code == 204 else resp.json()
                        if resp.status_code == 400 and _invalid_id(resp):
                            _store_cb.on_success()
                            raise ValueError("NOT_FOUND")
                        if 400 <= resp.status_code < 500:
                            _store_cb.on_success()  # the store answered; a refusal is not an outage
                            logger.warning(
                                "order store rejected request",
                                extra={"method": method, "table": table, "status": resp.status_code},
                            )
                            raise ValueError("STORE_REJECTED")
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries > max_retries or not _should_retry(resp, exc):
                        _store_cb.on_failure()
                        if exc:
                            raise exc
                        resp.raise_for_status()

                    sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    if not _is_test_mode():
                        time.sleep(min(sleep_s, cap))

        finally:
            _store_cb.on_finish()


# ---------------- Auth Adapter ---------------- #

class HttpAuthClient(AuthPort):
    """HTTP client for the hosted auth API with a circuit breaker.

    Auth calls are sent once: a password grant or a user creation is not
    safe to replay blindly.
    """

    def __init__(self, base_url: str | None = None, api_key: str | None = None,
                 service_key: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.ORDER_STORE_URL).rstrip("/") + "/auth/v1"
        self.api_key = api_key or settings.ORDER_STORE_ANON_KEY
        self.service_key = service_key or getattr(settings, "ORDER_STORE_SERVICE_ROLE_KEY", "")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _call(self, method: str, path: str, token: str | None = None, key: str | None = None,
              json=None, params=None) -> httpx.Response:
        """Send one auth API call and return the response for 2xx/4xx.

        Raises:
            RuntimeError: When the circuit is open.
            httpx.RequestError: For network/transport errors.
            httpx.HTTPStatusError: For 5xx responses.
        """
        key = key or self.api_key
        state = _auth_cb.before_call()
        headers = _request_headers({
            "apikey": key,
            "Authorization": f"Bearer {token or key}",
            "X-Circuit-State": state,
        })
        try:
            with httpx.Client(timeout=self.timeout) as client:
                try:
                    resp = client.request(method, f"{self.base_url}{path}", params=params, json=json, headers=headers)
                except httpx.RequestError:
                    _auth_cb.on_failure()
                    raise
                if resp.status_code >= 500:
                    _auth_cb.on_failure()
                    resp.raise_for_status()
                _auth_cb.on_success()
                return resp
        finally:
            _auth_cb.on_finish()

    def sign_in(self, email, password) -> AuthSession:
        resp = self._call("POST", "/token", params={"grant_type": "password"},
                          json={"email": email, "password": password})
        if resp.status_code != 200:
            raise ValueError("INVALID_CREDENTIALS")
        data = resp.json()
        user = data.get("user") or {}
        return AuthSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            user_id=str(user.get("id")),
            email=user.get("email"),
        )

    def get_user(self, access_token) -> AuthUser | None:
        resp = self._call("GET", "/user", token=access_token)
        if resp.status_code != 200:
            return None
        data = resp.json()
        return AuthUser(id=str(data["id"]), email=data.get("email"))

    def sign_out(self, access_token) -> None:
        self._call("POST", "/logout", token=access_token)

    def create_user(self, email, password, metadata) -> str:
        resp = self._call(
            "POST", "/admin/users", key=self.service_key,
            json={"email": email, "password": password, "email_confirm": True, "user_metadata": metadata},
        )
        if resp.status_code not in (200, 201):
            logger.warning("auth refused user creation", extra={"status": resp.status_code})
            raise ValueError("USER_NOT_CREATED")
        data = resp.json()
        user = data.get("user", data)
        return str(user["id"])


# ---------------- Print Relay Adapter ---------------- #

class HttpPrintRelay(PrintRelayPort):
    """Best-effort client for the ticket printer relay.

    One attempt with a timeout; any failure is logged and reported as False.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.PRINT_RELAY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def print_ticket(self, ticket) -> bool:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.request("POST", f"{self.base_url}/print", json=ticket, headers=_request_headers())
            if not 200 <= resp.status_code < 300:
                logger.warning("print relay refused ticket", extra={"status": resp.status_code})
                return False
            data = resp.json()
            if not isinstance(data, dict):
                logger.warning("print relay sent an unexpected reply", extra={"status": resp.status_code})
                return False
            return bool(data.get("printed", True))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("print relay unreachable", extra={"error": str(e)})
            return False
