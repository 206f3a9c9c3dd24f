from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.http_adapters import _messaging_cb
from apps.orders.providers import get_realtime_hub


def _database_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
    except DatabaseError:
        return False
    return True


def health_view(_request):
    """Report database reachability plus the state of the notification channels.

    Only the database decides the status code: a tripped messaging circuit
    degrades notifications but orders can still be taken.
    """
    db_ok = _database_ok()
    messaging = _messaging_cb.snapshot()
    return JsonResponse(
        {
            "ok": db_ok,
            "components": {
                "db": {"ok": db_ok},
                "messaging": {"ok": messaging["circuit"] != "OPEN", **messaging},
                "realtime": {"ok": True, "topics": get_realtime_hub().topic_count()},
            },
        },
        status=200 if db_ok else 503,
    )
