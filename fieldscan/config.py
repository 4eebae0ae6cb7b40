"""Central configuration for the fieldscan controller service."""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Literal, Optional, Protocol

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"

# Keys used in the operator settings store
KEY_ENDPOINT_URL = "endpointUrl"
KEY_CREDENTIAL = "credential"
KEY_CATEGORY = "category"
KEY_VOLUNTEER_CODE = "volunteerCode"


# ============================================================
# Nested Configuration Classes
# ============================================================

class TimingSettings(BaseModel):
    """Gate and status timing (milliseconds)."""
    scan_cooldown_ms: int = Field(100, description="Post-admission window during which scans are dropped")
    status_revert_ms: int = Field(500, description="Delay before success/error reverts to idle")


class EndpointSettings(BaseModel):
    """Fulfillment service paths, appended to the operator endpoint URL."""
    lookup_path: str = Field("lookup", description="Two-step: order lookup path")
    deliver_path: str = Field("deliver", description="Two-step: delivery confirmation path")
    submit_path: str = Field("", description="Single-step: submission path (empty posts to the URL itself)")
    submit_code_field: str = Field("scannedData", description="Single-step: JSON field carrying the scanned code")


class Settings(BaseSettings):
    """Environment-driven settings for the controller process."""

    # Protocol shape offered by the deployed fulfillment service
    protocol: Literal["single_step", "two_step"] = Field("two_step", description="Fulfillment protocol")

    # Operator settings persistence
    settings_store_path: Path = Field(ROOT_DIR / "operator-settings.json", description="Operator settings file")
    default_endpoint_url: str = Field("", description="Endpoint used when the store has none")
    default_category: str = Field("male", description="Target category used when the store has none")

    # Network
    http_timeout_seconds: float = Field(15.0, description="Transport timeout for fulfillment calls")

    # Controller HTTP Server
    controller_host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    controller_port: int = Field(5000, description="Port for FastAPI server")
    ui_event_queue_size: int = Field(16, description="Max buffered UI events per subscriber")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")
    log_file_name: str = Field("fieldscan-runtime.log", description="Runtime log file inside log_directory")
    log_to_file: bool = Field(True, description="Write the rotated runtime log in addition to the console")
    http_log_level: str = Field("WARNING", description="Level for the httpx/httpcore loggers")

    # Nested Configuration Objects
    timing: TimingSettings = Field(default_factory=TimingSettings, description="Gate and status timing")
    endpoints: EndpointSettings = Field(default_factory=EndpointSettings, description="Service paths")

    @field_validator("protocol", mode="before")
    @classmethod
    def _normalise_protocol(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide Settings, read once from the environment and `.env`."""

    return Settings()


# ============================================================
# Operator configuration (entered on the device)
# ============================================================

class OperatorConfig(BaseModel):
    """Values the volunteer enters on the settings screen."""

    endpoint_url: str = ""
    credential: Optional[str] = None
    category: Optional[str] = None
    volunteer_code: Optional[str] = None

    @field_validator("endpoint_url", "credential", "category", "volunteer_code", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    def missing_fields(self, required: Iterable[str]) -> List[str]:
        return [name for name in required if not getattr(self, name)]


class SettingsStore(Protocol):
    """Key/value persistence for operator settings."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemorySettingsStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key) or None

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonFileSettingsStore:
    """Stores operator settings as a flat JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Error loading settings from %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.error("Ignoring settings file %s: expected an object", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key) or None

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def load_operator_config(store: SettingsStore, settings: Settings) -> OperatorConfig:
    """Read operator configuration, falling back to deployment defaults."""

    return OperatorConfig(
        endpoint_url=store.get(KEY_ENDPOINT_URL) or settings.default_endpoint_url,
        credential=store.get(KEY_CREDENTIAL),
        category=store.get(KEY_CATEGORY) or settings.default_category,
        volunteer_code=store.get(KEY_VOLUNTEER_CODE),
    )


def save_operator_config(store: SettingsStore, config: OperatorConfig, *, clear_credential: bool = False) -> None:
    """Write the settings form to the store; `clear_credential` wipes the stored credential."""
    store.set(KEY_ENDPOINT_URL, config.endpoint_url)
    store.set(KEY_CATEGORY, config.category or "")
    store.set(KEY_VOLUNTEER_CODE, config.volunteer_code or "")
    if clear_credential:
        store.set(KEY_CREDENTIAL, "")
    elif config.credential:
        # An empty credential in the form keeps the stored one
        store.set(KEY_CREDENTIAL, config.credential)
