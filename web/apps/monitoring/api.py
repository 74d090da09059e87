import logging

from django.http import JsonResponse
from django.db import connection

from apps.orders import providers

logger = logging.getLogger(__name__)

NIL_ID = "00000000-0000-0000-0000-000000000000"


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except Exception:
        logger.warning("health: database unreachable", exc_info=True)

    store_ok = False
    try:
        # a lookup that matches nothing still proves the store answers
        providers.get_repository(privileged=True).get_profile(NIL_ID)
        store_ok = True
    except Exception:
        logger.warning("health: order store unreachable", exc_info=True)

    ok = db_ok and store_ok
    code = 200 if ok else 503
    return JsonResponse(
        {"ok": ok, "components": {"db": {"ok": db_ok}, "order_store": {"ok": store_ok}}},
        status=code,
    )
