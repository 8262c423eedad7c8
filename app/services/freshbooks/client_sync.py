"""Import FreshBooks clients into local mirror records."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.metrics import record_sync_item
from app.models.freshbooks import FreshbooksClient as FreshbooksClientRecord
from app.services.common import is_blank
from app.services.freshbooks.client import FreshbooksClient

logger = logging.getLogger(__name__)


@dataclass
class RecordSyncResult:
    created: int = 0
    updated: int = 0
    errors: list[dict] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def total_synced(self) -> int:
        return self.created + self.updated

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


def _blank_to_none(value):
    return None if is_blank(value) else value


def upsert_freshbooks_client(db: Session, data: dict) -> tuple[FreshbooksClientRecord, bool]:
    """Create or update the mirror for one FreshBooks client payload. Does not commit."""
    freshbooks_id = str(data.get("id") or data.get("userid"))
    record = db.query(FreshbooksClientRecord).filter(FreshbooksClientRecord.freshbooks_id == freshbooks_id).first()
    created = record is None
    if created:
        record = FreshbooksClientRecord(freshbooks_id=freshbooks_id)
        db.add(record)

    record.email = _blank_to_none(data.get("email"))
    record.first_name = _blank_to_none(data.get("fname"))
    record.last_name = _blank_to_none(data.get("lname"))
    record.organization = _blank_to_none(data.get("organization"))
    record.phone = _blank_to_none(data.get("phone") or data.get("mob_phone") or data.get("bus_phone"))
    record.raw_data = data
    db.flush()
    return record, created


class FreshbooksClientSync:
    """Pull client (customer) records from FreshBooks."""

    PER_PAGE = 100

    def __init__(self, db: Session, client: FreshbooksClient | None = None):
        self.db = db
        self._client = client

    def _get_client(self) -> FreshbooksClient:
        if self._client is None:
            self._client = FreshbooksClient(self.db)
        return self._client

    def close(self):
        if self._client:
            self._client.close()
            self._client = None

    def _apply(self, data: dict, result: RecordSyncResult) -> None:
        savepoint = self.db.begin_nested()
        try:
            _, created = upsert_freshbooks_client(self.db, data)
            savepoint.commit()
        except Exception as exc:
            savepoint.rollback()
            client_id = data.get("id") or data.get("userid")
            logger.warning("freshbooks_client_sync_failed client_id=%s error=%s", client_id, exc)
            result.errors.append({"client_id": client_id, "error": str(exc)})
            record_sync_item("freshbooks", "error")
            return
        if created:
            result.created += 1
        else:
            result.updated += 1
        record_sync_item("freshbooks", "created" if created else "updated")

    def sync_client(self, client_id: str) -> RecordSyncResult:
        start = time.monotonic()
        result = RecordSyncResult()
        data = self._get_client().get_client(client_id)
        if data:
            self._apply(data, result)
            self.db.commit()
        result.duration_seconds = time.monotonic() - start
        return result

    def sync_all(self) -> RecordSyncResult:
        start = time.monotonic()
        result = RecordSyncResult()
        page = 1
        while True:
            listing = self._get_client().list_clients(page=page, per_page=self.PER_PAGE)
            for data in listing["clients"]:
                self._apply(data, result)
            self.db.commit()
            if page >= listing["pages"]:
                break
            page += 1
        result.duration_seconds = time.monotonic() - start
        if result.has_errors:
            logger.warning("freshbooks_client_sync_partial errors=%d", len(result.errors))
        return result


def freshbooks_client_sync(db: Session) -> FreshbooksClientSync:
    return FreshbooksClientSync(db)
