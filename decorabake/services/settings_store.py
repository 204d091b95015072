"""Operator settings backed by data/settings.json, re-read when the file changes."""

from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULT_SETTINGS: Dict[str, Any] = {
    "SITE_NAME": "DecoraBake",
    "SITE_URL": "http://localhost:5173",
    "CURRENCY": "AUD",
    "CONTACT_EMAIL": "hello@decorabake.com.au",
    "CONTACT_PHONE": "1300 123 456",
    "ADDRESS": "Sydney, NSW, Australia",
    "FREE_SHIPPING_THRESHOLD": 149,
    "EMAIL_ENABLED": False,
    "SMTP_HOST": "",
    "SMTP_PORT": 587,
    "SMTP_USER": "",
    "SMTP_PASSWORD": "",
    "EMAIL_FROM": "",
    "EMAIL_FROM_NAME": "DecoraBake",
    "ADMIN_EMAIL": "",
    "SEND_ORDER_CONFIRMATION": True,
    "SEND_WELCOME_EMAIL": True,
    "SEND_SHIPPING_NOTIFICATION": True,
    "SEND_ADMIN_ORDER_NOTIFICATION": True,
    "SEND_ADMIN_REFUND_NOTIFICATION": True,
}

SECRET_KEYS = {"SMTP_PASSWORD"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class StoreSettings:
    """Snapshot of the operator settings at the moment it was read."""

    site_name: str = "DecoraBake"
    site_url: str = "http://localhost:5173"
    currency: str = "AUD"
    contact_email: str = ""
    contact_phone: str = ""
    address: str = ""
    free_shipping_threshold: int = 149
    email_enabled: bool = False
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    email_from: str = ""
    email_from_name: str = "DecoraBake"
    admin_email: str = ""
    send_order_confirmation: bool = True
    send_welcome_email: bool = True
    send_shipping_notification: bool = True
    send_admin_order_notification: bool = True
    send_admin_refund_notification: bool = True

    @property
    def smtp_configured(self) -> bool:
        return bool(self.email_enabled and self.smtp_host.strip() and self.smtp_user.strip())

    @property
    def sender(self) -> str:
        return f'"{self.email_from_name or self.site_name}" <{self.email_from or self.smtp_user}>'

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "StoreSettings":
        merged = {**DEFAULT_SETTINGS, **(data or {})}
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = merged.get(f.name.upper(), f.default)
            if f.type in ("bool", bool):
                values[f.name] = _as_bool(raw)
            elif f.type in ("int", int):
                values[f.name] = _as_int(raw, f.default)
            else:
                values[f.name] = "" if raw is None else str(raw)
        values["site_url"] = values["site_url"].rstrip("/")
        return cls(**values)

    def to_mapping(self, mask_secrets: bool = False) -> Dict[str, Any]:
        data = {k.upper(): v for k, v in asdict(self).items()}
        if mask_secrets:
            for key in SECRET_KEYS:
                if data.get(key):
                    data[key] = "********"
        return data


class SettingsStore:
    """Reads operator settings per call, reparsing only when the file's mtime moved."""

    def __init__(self, settings_file: Path) -> None:
        self._settings_file = Path(settings_file)
        self._lock = threading.Lock()
        self._mtime: Optional[float] = None
        self._cached: Optional[StoreSettings] = None

    @property
    def path(self) -> Path:
        return self._settings_file

    def load(self) -> StoreSettings:
        with self._lock:
            try:
                mtime = self._settings_file.stat().st_mtime
            except FileNotFoundError:
                self._mtime, self._cached = None, StoreSettings.from_mapping({})
                return self._cached
            if self._cached is not None and self._mtime is not None and mtime <= self._mtime:
                return self._cached
            self._cached = StoreSettings.from_mapping(self._read_raw())
            self._mtime = mtime
            return self._cached

    def update(self, changes: Dict[str, Any]) -> StoreSettings:
        """Merge known keys into the file. A masked secret leaves the stored one untouched."""
        valid = {k: v for k, v in (changes or {}).items() if k in DEFAULT_SETTINGS}
        for key in SECRET_KEYS:
            if valid.get(key) == "********":
                valid.pop(key)
        with self._lock:
            current = {**DEFAULT_SETTINGS, **self._read_raw()}
            current.update(valid)
            self._settings_file.parent.mkdir(parents=True, exist_ok=True)
            self._settings_file.write_text(json.dumps(current, indent=2, ensure_ascii=False), encoding="utf-8")
            # force a reparse even if the filesystem mtime resolution hides the write
            self._mtime, self._cached = None, None
        return self.load()

    def _read_raw(self) -> Dict[str, Any]:
        try:
            data = json.loads(self._settings_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            print(f"[SettingsStore] settings file is not valid JSON ({self._settings_file}): {exc}")
            return {}
        return data if isinstance(data, dict) else {}
