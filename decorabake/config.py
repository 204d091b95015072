"""DecoraBake application settings."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .services.settings_store import DEFAULT_SETTINGS


@dataclass
class StoreConfig:
    """Process-level settings; operator-editable values live in settings.json."""

    secret_key: str
    project_root: Path
    app_root: Path
    data_dir: Path
    database_url: str

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def notification_log_file(self) -> Path:
        return self.data_dir / "notification_log.json"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "StoreConfig":
        """Build from the environment (and .env), making sure the data directory exists."""

        load_dotenv()
        app_root = Path(__file__).resolve().parent
        project_root = app_root.parent
        data_dir = Path(data_dir or os.environ.get("DECORABAKE_DATA_DIR") or project_root / "data")

        config = cls(
            secret_key=os.environ.get("SECRET_KEY", "dev_secret"),
            project_root=project_root,
            app_root=app_root,
            data_dir=data_dir,
            database_url=os.environ.get("DATABASE_URL") or f"sqlite:///{data_dir / 'app.db'}",
        )
        config.data_dir.mkdir(parents=True, exist_ok=True)

        if not config.settings_file.exists():
            config.settings_file.write_text(
                json.dumps(DEFAULT_SETTINGS, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            print(f"[StoreConfig] created default settings file: {config.settings_file}")

        return config
