"""Replay protection for client registration.

The registration form can be sent twice (double tap, flaky mobile network)
and registration writes several rows to the hosted store, so a second run
would duplicate the client. A request sent with an ``Idempotency-Key``
header is recorded here: the first request with a key is processed and its
response stored, later requests with the same key and body get the stored
response back, and the same key with another body is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey


def payload_digest(payload: dict) -> str:
    """SHA-256 of the payload serialised with sorted keys and compact separators."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Claim ``key`` for this payload or find the earlier claim.

    Returns:
        tuple[bool, IdempotencyKey]: ``(False, rec)`` for a new key, which the
        caller must ``finalize``; ``(True, rec)`` when the key was already
        used with the same payload and ``rec`` holds the response to replay.

    Raises:
        ValueError: ``IDEMPOTENCY_CONFLICT`` when the key was used with a
            different payload.
    """
    digest = payload_digest(payload)
    try:
        # savepoint, so a duplicate key only rolls back this insert
        with transaction.atomic():
            return False, IdempotencyKey.objects.create(key=key, request_hash=digest)
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
    if rec.request_hash != digest:
        raise ValueError("IDEMPOTENCY_CONFLICT")
    return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, client_id=None):
    """Store the response sent for ``rec`` (and the created client, if any)."""
    rec.response_status = status_code
    rec.response_body = body
    rec.client_id = str(client_id) if client_id is not None else rec.client_id
    rec.save(update_fields=["response_status", "response_body", "client_id"])
