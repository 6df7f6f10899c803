import json
from pathlib import Path

from tally.models import IdFormat

CONFIG_DIR = Path.home() / ".config" / "tally"
SETTINGS_PATH = CONFIG_DIR / "settings.json"

DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "tally"
DB_NAME = "tally.db"

DEFAULTS = {
    "data_dir": str(DEFAULT_DATA_DIR),
    "monthly_limit": 30,
    "max_skip_ratio": 0.25,
    "id_format": IdFormat.STANDARD.value,
    "workers": 4,
    "bank_rules": {},
}


def load_settings() -> dict:
    if SETTINGS_PATH.exists():
        with open(SETTINGS_PATH) as f:
            saved = json.loads(f.read())
        return validate_settings({**DEFAULTS, **saved})
    return dict(DEFAULTS)


def save_settings(settings: dict) -> None:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    with open(SETTINGS_PATH, "w") as f:
        f.write(json.dumps(settings, indent=2) + "\n")


def validate_settings(settings: dict) -> dict:
    """Coerce known keys to their types; raises ValueError for out-of-range values."""
    limit = int(settings["monthly_limit"])
    if limit < 0:
        raise ValueError(f"monthly_limit must be >= 0, got {limit}")
    ratio = float(settings["max_skip_ratio"])
    if not 0.0 <= ratio <= 1.0:
        raise ValueError(f"max_skip_ratio must be between 0 and 1, got {ratio}")
    workers = int(settings["workers"])
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    return {
        **settings,
        "monthly_limit": limit,
        "max_skip_ratio": ratio,
        "workers": workers,
        "id_format": IdFormat(settings["id_format"]).value,
        "bank_rules": dict(settings.get("bank_rules") or {}),
    }


def get_data_dir() -> Path:
    return Path(load_settings()["data_dir"])


def get_db_path(settings: dict | None = None) -> Path:
    settings = settings or load_settings()
    return Path(settings["data_dir"]) / DB_NAME
