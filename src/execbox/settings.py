from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.errors import ConfigError
from .core.languages import LanguageRegistry


class Settings(BaseSettings):
    # ---- workspace ----
    workspace_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    sweep_on_startup: bool = True
    stale_after_s: int = 3600

    # ---- deadline (build + run together) ----
    timeout_s: float = 10.0
    kill_grace_s: float = 2.0

    # ---- languages ----
    languages_file: Optional[Path] = None
    languages: Dict[str, Any] = {}  # raw recipes read from the YAML `languages:` block

    # ---- service ----
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    # env prefix SBX_*
    model_config = SettingsConfigDict(env_prefix="SBX_", extra="ignore")

    def registry(self) -> LanguageRegistry:
        reg = LanguageRegistry.default()
        if self.languages_file is not None:
            reg = LanguageRegistry.from_yaml(self.languages_file)
        if self.languages:
            reg = LanguageRegistry.from_mapping(self.languages, base={n: reg.resolve(n) for n in reg})
        return reg


def load_settings(conf_path: Optional[str] = None) -> Settings:
    """Env SBX_* first, then values from the YAML file (SBX_CONF or conf/execbox.yaml) on top."""
    s = Settings()

    path = conf_path or os.environ.get("SBX_CONF", "conf/execbox.yaml")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    except yaml.YAMLError as e:
        raise ConfigError(f"cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")

    known = {k: v for k, v in data.items() if k in Settings.model_fields}
    if not known:
        return s
    # re-validate so YAML strings become Path/float/bool like env values do
    return Settings.model_validate({**s.model_dump(), **known})
