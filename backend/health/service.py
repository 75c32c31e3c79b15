import logging
import socket
from typing import Any, Dict
from urllib.parse import urlparse

import backend.infra.supabase_client as supabase_client
from backend.config import SUPABASE_URL

logger = logging.getLogger(__name__)

HEALTH_TABLES = ["courses", "course_plans", "users", "purchases", "enrollments"]

def _check_table(client, name: str) -> Dict[str, Any]:
    try:
        res = client.table(name).select("*").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        logger.exception("health.service table check failed table=%s", name)
        return {"ok": False, "error": str(e)}

def health_supabase_info() -> Dict[str, Any]:
    """Diagnostic Supabase: résolution DNS de l'hôte puis lecture d'une ligne par table."""
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError as e:
            dns_ok = False
            dns_error = str(e)

    info: Dict[str, Any] = {
        "supabase_url": SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = supabase_client.get_supabase()
    except Exception as e:
        info["error"] = str(e)
        return info
    for t in HEALTH_TABLES:
        info["tables"][t] = _check_table(client, t)
    info["connect_ok"] = all(t["ok"] for t in info["tables"].values())
    return info
