import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'tagshelf.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    IMPORT_BATCH_SIZE = int(os.environ.get("IMPORT_BATCH_SIZE", "50"))
    IMPORT_SKIP_DUPLICATES = _env_flag("IMPORT_SKIP_DUPLICATES", "1")
    IMPORT_CREATE_MISSING_TAGS = _env_flag("IMPORT_CREATE_MISSING_TAGS", "1")
    IMPORT_PRESERVE_TIMESTAMPS = _env_flag("IMPORT_PRESERVE_TIMESTAMPS", "1")
    IMPORT_FOLDER_AS_TAG = _env_flag("IMPORT_FOLDER_AS_TAG", "1")
    IMPORT_DEFAULT_TAG_COLOR = os.environ.get("IMPORT_DEFAULT_TAG_COLOR", "#3b82f6")
    IMPORT_UNCATEGORIZED_TAG = os.environ.get(
        "IMPORT_UNCATEGORIZED_TAG", "uncategorized"
    )
    IMPORT_MAX_CONTENT_BYTES = int(
        os.environ.get("IMPORT_MAX_CONTENT_BYTES", str(20 * 1024 * 1024))
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"
