"""
Configuration - env vars, constants, logging setup.

Settings are built once at process start and handed to the services that need
them; nothing below reads os.environ at request time.
"""

import os
import logging
from pathlib import Path
from typing import Mapping, Optional, List

from dotenv import load_dotenv
from pydantic import BaseModel

from app.errors import ConfigurationError

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("gradesense")

REQUIRED_SETTINGS = {
    "MONGO_URL": "mongo_url",
    "DB_NAME": "db_name",
    "GOOGLE_APPLICATION_CREDENTIALS": "google_credentials_path",
    "GEMINI_API_KEY": "gemini_api_key",
}

# Allowed headers on the pre-flight response
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


class Settings(BaseModel):
    mongo_url: str
    db_name: str
    google_credentials_path: str
    gemini_api_key: str
    gemini_model: str = "gemini-2.5-flash"
    max_prompt_chars: int = 2000
    external_call_timeout_seconds: float = 60.0
    adapter_max_attempts: int = 3
    retry_base_delay_seconds: float = 2.0
    max_processing_attempts: int = 3
    max_upload_mb: int = 30
    store_raw_ocr: bool = False
    cors_origins: List[str] = ["*"]
    auth_redirect_url: str = "/auth"
    environment: str = "development"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.
    Raises ConfigurationError listing every missing required variable.
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_SETTINGS if not env.get(name)]
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    values = {field: env[name] for name, field in REQUIRED_SETTINGS.items()}

    # Make GCP credentials path absolute relative to ROOT_DIR if needed
    credentials_path = Path(values["google_credentials_path"])
    if not credentials_path.is_absolute():
        credentials_path = ROOT_DIR / credentials_path
    values["google_credentials_path"] = str(credentials_path)

    optional = {
        "GEMINI_MODEL": ("gemini_model", str),
        "MAX_PROMPT_CHARS": ("max_prompt_chars", int),
        "EXTERNAL_CALL_TIMEOUT_SECONDS": ("external_call_timeout_seconds", float),
        "ADAPTER_MAX_ATTEMPTS": ("adapter_max_attempts", int),
        "RETRY_BASE_DELAY_SECONDS": ("retry_base_delay_seconds", float),
        "MAX_PROCESSING_ATTEMPTS": ("max_processing_attempts", int),
        "MAX_UPLOAD_MB": ("max_upload_mb", int),
        "STORE_RAW_OCR": ("store_raw_ocr", _as_bool),
        "AUTH_REDIRECT_URL": ("auth_redirect_url", str),
    }
    for name, (field, cast) in optional.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            values[field] = cast(raw)
        except ValueError:
            raise ConfigurationError(f"Invalid value for {name}: {raw!r}")

    cors_origins_env = env.get("CORS_ORIGINS")
    if cors_origins_env:
        values["cors_origins"] = [origin.strip() for origin in cors_origins_env.split(",")]

    values["environment"] = env.get("ENV", env.get("ENVIRONMENT", "development"))

    settings = Settings(**values)
    logger.info(f"✅ Configuration loaded (env={settings.environment}, model={settings.gemini_model})")
    return settings


def get_version_info():
    """Get deployment version information."""
    git_commit = os.environ.get("GIT_COMMIT_SHA")
    if not git_commit:
        try:
            if os.path.exists(".git_commit"):
                with open(".git_commit", "r") as f:
                    git_commit = f.read().strip()
        except OSError:
            git_commit = None

    if not git_commit:
        logger.warning("GIT_COMMIT_SHA not set and .git_commit not found. Build pipeline issue?")
        git_commit = "unknown"

    build_time = os.environ.get("BUILD_TIME", "unknown")
    env = os.environ.get("ENV", os.environ.get("ENVIRONMENT", "development"))

    return {
        "git_commit": git_commit,
        "build_time": build_time,
        "environment": env
    }
