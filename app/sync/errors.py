# app/sync/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base class for product sync failures."""
    kind = "error"


class ValidationError(SyncError):
    """Bad input or reference data; raised before anything is sent to TPOS."""
    kind = "validation"


class ReferenceDataMissing(ValidationError):
    def __init__(self, missing_ids, what: str = "attribute values"):
        self.missing_ids = list(missing_ids)
        super().__init__(f"{what.capitalize()} not found: {', '.join(map(str, self.missing_ids))}")


class ExternalCallError(SyncError):
    """TPOS call failed (network error or non-2xx that is not a duplicate)."""
    kind = "external"

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


class ReconciliationError(SyncError):
    """
    TPOS accepted the product but writing it locally failed.
    The catalog now holds state the local store does not; external_ids
    must reach the caller so the product is not created twice.
    """
    kind = "reconciliation"

    def __init__(self, message: str, *, external_ids: Dict[str, Any]):
        super().__init__(message)
        self.external_ids = dict(external_ids)
