"""App-level configuration.

Values come from environment variables (optionally loaded from a `.env` file).
The app runs fully offline when no backend/grading endpoints are configured:
exams are served from the in-memory demo backend and open-ended answers are
graded locally (SBERT similarity, with a lexical fallback).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default).strip().lower()
    return raw in {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class AppConfig:
    """Configuration values used across the app."""

    # Hosted database (Supabase/PostgREST). Empty URL -> in-memory demo backend.
    backend_url: str = _env_str("EXAMBUILDER_BACKEND_URL")
    backend_key: str = _env_str("EXAMBUILDER_BACKEND_KEY")

    # External AI endpoints. Empty grading URL -> local semantic grader.
    grading_url: str = _env_str("EXAMBUILDER_GRADING_URL")
    generation_url: str = _env_str("EXAMBUILDER_GENERATION_URL")
    request_timeout: float = _env_float("EXAMBUILDER_REQUEST_TIMEOUT", 60.0)

    # Where the in-progress attempt is saved between reloads.
    storage_path: Path = Path(_env_str("EXAMBUILDER_STORAGE_PATH", ".exambuilder/local_storage.json"))

    autosave_interval_seconds: float = _env_float("EXAMBUILDER_AUTOSAVE_SECONDS", 30.0)
    timer_tick_seconds: float = _env_float("EXAMBUILDER_TIMER_TICK_SECONDS", 1.0)

    # If set, never download models at runtime.
    offline_strict: bool = _env_flag("EXAMBUILDER_OFFLINE_STRICT")

    # Enable SBERT similarity for the local open-ended grader.
    enable_sbert: bool = _env_flag("EXAMBUILDER_ENABLE_SBERT", "1")
    sbert_model_name_or_path: str = _env_str("EXAMBUILDER_SBERT_MODEL", "all-MiniLM-L6-v2")

    # Study material text sent to question generation is truncated to this many characters.
    pdf_text_budget: int = _env_int("EXAMBUILDER_PDF_TEXT_BUDGET", 12000)

    log_level: str = _env_str("EXAMBUILDER_LOG_LEVEL", "INFO")


CONFIG = AppConfig()


def _apply_offline_env(config: AppConfig) -> None:
    if not config.offline_strict:
        return

    # Make HuggingFace/Transformers behave in offline mode (avoid remote checks/downloads).
    os.environ.setdefault("HF_HUB_OFFLINE", "1")
    os.environ.setdefault("TRANSFORMERS_OFFLINE", "1")
    os.environ.setdefault("HF_DATASETS_OFFLINE", "1")


_apply_offline_env(CONFIG)
