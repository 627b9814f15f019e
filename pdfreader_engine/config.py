from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import load_json


@dataclass(frozen=True)
class EngineConfig:
    render: dict[str, Any] = field(default_factory=dict)
    ocr: dict[str, Any] = field(default_factory=dict)
    annotate: dict[str, Any] = field(default_factory=dict)
    storage: dict[str, Any] = field(default_factory=dict)

    @property
    def render_scale(self) -> float:
        return float(self.render.get("scale", 2.0))

    @property
    def ocr_engine(self) -> str:
        return str(self.ocr.get("engine", "auto"))

    @property
    def ocr_preprocessing(self) -> bool:
        return bool(self.ocr.get("preprocessing", True))

    @property
    def ocr_max_attempts(self) -> int:
        return int(self.ocr.get("max_attempts", 2))

    @property
    def highlight_opacity(self) -> float:
        return float(self.annotate.get("highlight_opacity", 0.3))

    @property
    def max_upload_bytes(self) -> int:
        return int(self.storage.get("max_upload_bytes", 50 * 1024 * 1024))

    @property
    def pdf_bucket(self) -> str:
        return str(self.storage.get("bucket", "pdf"))

    @property
    def files_table(self) -> str:
        return str(self.storage.get("files_table", "pdf_files"))

    @property
    def signed_url_expires(self) -> int:
        return int(self.storage.get("signed_url_expires", 3600))


def load_config(config_path: str | Path | None = None) -> EngineConfig:
    """Load engine knobs from JSON. A missing path yields the defaults."""
    if config_path is None or not Path(config_path).exists():
        return EngineConfig()
    data = load_json(config_path)
    return EngineConfig(
        render=data.get("render", {}),
        ocr=data.get("ocr", {}),
        annotate=data.get("annotate", {}),
        storage=data.get("storage", {}),
    )


class Settings(BaseSettings):
    """Server settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "pdfreader"
    debug: bool = False

    supabase_url: str = ""
    supabase_key: str = ""  # anon key
    supabase_service_role_key: str = ""  # needed to overwrite objects on save

    engine_config_path: str = str(Path("config") / "default.json")


@lru_cache
def get_settings() -> Settings:
    return Settings()
