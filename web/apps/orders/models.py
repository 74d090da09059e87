from django.db import models


class IdempotencyKey(models.Model):
    """Stored outcome of a client registration sent with an ``Idempotency-Key``.

    Clients and paellas live in the hosted store; this local table only
    remembers which registration requests were already processed.
    """

    key = models.CharField(max_length=200, primary_key=True)
    # sha256 hex of the canonical request payload
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    client_id = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
