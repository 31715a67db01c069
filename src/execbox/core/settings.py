from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ---- paths ----
    scratch_dir: Path = Path("/tmp/execbox/scratch")
    blob_dir: Path = Path("/tmp/execbox/blobs")
    status_db_url: str = "sqlite:///./execbox.db"

    # ---- job / status ----
    status_ttl_s: int = 3600
    max_code_chars: int = 10_000
    sync_timeout_s: int = 60
    syntax_heuristics: bool = True

    # ---- process limits ----
    max_output_bytes: int = 1024 * 1024
    enforce_rlimits: bool = False
    cpu_seconds: int = 0                 # 0 = no RLIMIT_CPU
    nofile: int = 0                      # 0 = no RLIMIT_NOFILE

    # binary overrides, e.g. {"python3": "/usr/bin/python3.12"}
    runtimes: Dict[str, str] = {}

    # ---- api / worker ----
    cors_origins: List[str] = ["*"]
    embedded_worker: bool = True
    batch_size: int = 10
    poll_interval_s: float = 0.5

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="EXECBOX_", extra="ignore")


def load_settings(**overrides: Any) -> Settings:
    # 0) base from EXECBOX_* env
    s = Settings()

    # 1) conf/execbox.yaml (or EXECBOX_CONF)
    conf_path = os.environ.get("EXECBOX_CONF", "conf/execbox.yaml")
    try:
        with open(conf_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    # env wins over the file
    env_set = {name for name in Settings.model_fields if f"EXECBOX_{name.upper()}" in os.environ}
    update = {k: v for k, v in data.items() if k in Settings.model_fields and k not in env_set}
    update.update(overrides)

    # 2) re-validate so YAML strings become Path/int/bool
    return Settings.model_validate({**s.model_dump(), **update})
