# app/models/audit_log.py
# In-memory trail of sync / batch events, served at GET /api/audit.
from typing import List, Dict, Any, Optional
import time
import threading

MAX_ENTRIES = 1000

audit_log: List[Dict[str, Any]] = []
lock = threading.Lock()

def add_audit_entry(action: str, user: str, details: str, product_code: Optional[str] = None):
    entry = {
        "action": action,
        "user": user,
        "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
        "product_code": product_code,
        "details": details,
    }
    with lock:
        audit_log.append(entry)
        if len(audit_log) > MAX_ENTRIES:
            del audit_log[: len(audit_log) - MAX_ENTRIES]

def get_audit_log(product_code: Optional[str] = None) -> List[Dict[str, Any]]:
    with lock:
        if product_code:
            return [e for e in audit_log if e.get("product_code") == product_code]
        return list(audit_log)

def clear_audit_log() -> None:
    with lock:
        audit_log.clear()
