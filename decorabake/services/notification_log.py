"""Notification delivery log, so operators can see which customers were never told."""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional


@dataclass
class NotificationRecord:
    """One dispatch attempt."""

    record_id: str
    timestamp: str
    event: str
    recipient: str
    status: str  # "delivered", "disabled" or "failed"
    subject: Optional[str] = None
    reference: Optional[str] = None  # order or refund code
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class NotificationLogRepository:
    """File-backed, newest-last list of dispatch attempts capped at ``max_records``."""

    def __init__(self, data_file: Path, max_records: int = 1000) -> None:
        self._data_file = Path(data_file)
        self._max_records = max_records
        self._lock = threading.Lock()
        self._ensure_file_exists()

    def _ensure_file_exists(self) -> None:
        if not self._data_file.exists():
            self._data_file.parent.mkdir(parents=True, exist_ok=True)
            self._data_file.write_text("[]", encoding="utf-8")

    def add_record(
        self,
        event: str,
        recipient: str,
        status: str,
        subject: Optional[str] = None,
        reference: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> NotificationRecord:
        record = NotificationRecord(
            record_id=str(uuid.uuid4()),
            timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            event=event,
            recipient=recipient,
            status=status,
            subject=subject,
            reference=reference,
            error_message=error_message,
        )
        with self._lock:
            records = self._load_records()
            records.append(record.to_dict())
            self._save_records(records[-self._max_records:])
        return record

    def list_records(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        status: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> List[NotificationRecord]:
        """Newest first, optionally filtered by status and order/refund code."""
        with self._lock:
            records = self._load_records()
        records.reverse()
        if status:
            records = [r for r in records if r.get("status") == status]
        if reference:
            records = [r for r in records if r.get("reference") == reference]
        if limit is not None:
            records = records[offset : offset + limit]
        else:
            records = records[offset:]
        return [NotificationRecord(**r) for r in records]

    def count_records(self) -> int:
        with self._lock:
            return len(self._load_records())

    def _load_records(self) -> List[dict]:
        try:
            data = json.loads(self._data_file.read_text(encoding="utf-8"))
            if isinstance(data, list):
                return data
        except (OSError, json.JSONDecodeError) as e:
            print(f"[NotificationLogRepository] failed to load records: {e}")
        return []

    def _save_records(self, records: List[dict]) -> None:
        # write errors propagate; the dispatcher logs them
        self._data_file.write_text(
            json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8"
        )
