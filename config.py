import os
from dataclasses import dataclass

import yaml
from dotenv import load_dotenv

load_dotenv()

# Fichier YAML optionnel (valeurs par défaut du store)
CONFIG_FILE = os.getenv("ROKLEARN_CONFIG", "config.yml")

cfg: dict = {}
if os.path.exists(CONFIG_FILE):
    with open(CONFIG_FILE, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(cfg.get(name.lower(), default))
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Stockage durable et moteur
STORE_DIR = os.getenv("STORE_DIR", cfg.get("store_dir", "./data"))
DB_URL    = os.getenv("DB_URL", cfg.get("db_url", "sqlite+aiosqlite://"))
DB_ENGINE = os.getenv("DB_ENGINE", cfg.get("db_engine", "sqlite")).lower()   # sqlite | fallback
DB_ECHO   = _flag("DB_ECHO", False)

# Slots du stockage clé/valeur
SNAPSHOT_KEY     = "roklearn_database"
FALLBACK_KEY     = "roklearn_fallback"
BACKUP_KEY       = "roklearn_database_backup"
CURRENT_USER_KEY = "roklearn_current_user"

# Sauvegarde périodique (6e champ = secondes)
BACKUP_ENABLED = _flag("BACKUP_ENABLED", True)
BACKUP_CRON    = os.getenv("BACKUP_CRON", cfg.get("backup_cron", "* * * * * */30"))

# Constantes métier
UNKNOWN_AUTHOR      = os.getenv("UNKNOWN_AUTHOR", cfg.get("unknown_author", "Unknown User"))
MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", cfg.get("min_password_length", 6)))
MAX_MEDIA_BYTES     = int(os.getenv("MAX_MEDIA_BYTES", cfg.get("max_media_bytes", 50 * 1024 * 1024)))


@dataclass(frozen=True)
class StoreSettings:
    """Resolved settings handed explicitly to the facade and services."""

    store_dir: str = STORE_DIR
    db_url: str = DB_URL
    db_engine: str = DB_ENGINE
    db_echo: bool = DB_ECHO
    backup_enabled: bool = BACKUP_ENABLED
    backup_cron: str = BACKUP_CRON
    unknown_author: str = UNKNOWN_AUTHOR
    min_password_length: int = MIN_PASSWORD_LENGTH
    max_media_bytes: int = MAX_MEDIA_BYTES
