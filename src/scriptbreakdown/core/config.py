from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    breakdown_dir: Path
    db_path: Path


DEFAULT_BREAKDOWN_DIRNAME = ".breakdown"


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    breakdown_home_raw = os.getenv("BREAKDOWN_HOME")
    if breakdown_home_raw:
        breakdown_dir = Path(breakdown_home_raw).expanduser().resolve()
    else:
        breakdown_dir = root / DEFAULT_BREAKDOWN_DIRNAME

    return AppPaths(
        project_root=root,
        breakdown_dir=breakdown_dir,
        db_path=breakdown_dir / "breakdown.db",
    )


DEFAULT_MIN_CHARS_PER_CHUNK = 2500
DEFAULT_MAX_CHARS_PER_CHUNK = 14000
DEFAULT_CHARS_PER_PAGE = 1500
DEFAULT_STALE_JOB_TIMEOUT_SECONDS = 600
DEFAULT_EXTRACTION_CONCURRENCY = 1
DEFAULT_LLM_MODEL = "gpt-4.1-mini"
DEFAULT_LLM_MAX_TOKENS = 8000
DEFAULT_LLM_TEMPERATURE = 0.1
DEFAULT_LLM_TIMEOUT_SECONDS = 120.0
DEFAULT_LLM_MAX_RETRIES = 3


@dataclass(frozen=True)
class BreakdownSettings:
    min_chars_per_chunk: int = DEFAULT_MIN_CHARS_PER_CHUNK
    max_chars_per_chunk: int = DEFAULT_MAX_CHARS_PER_CHUNK
    chars_per_page: int = DEFAULT_CHARS_PER_PAGE
    stale_job_timeout_seconds: int = DEFAULT_STALE_JOB_TIMEOUT_SECONDS
    extraction_concurrency: int = DEFAULT_EXTRACTION_CONCURRENCY
    llm_model: str = DEFAULT_LLM_MODEL
    llm_base_url: str | None = None
    llm_api_key: str | None = None
    llm_max_tokens: int = DEFAULT_LLM_MAX_TOKENS
    llm_temperature: float = DEFAULT_LLM_TEMPERATURE
    llm_timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS
    llm_max_retries: int = DEFAULT_LLM_MAX_RETRIES

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key)


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if value > 0 else default


def read_float_env(name: str, default: float, *, allow_zero: bool = False) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except ValueError:
        return default
    if value > 0 or (allow_zero and value == 0):
        return value
    return default


def read_str_env(*names: str) -> str | None:
    for name in names:
        raw = os.getenv(name)
        if raw and raw.strip():
            return raw.strip()
    return None


def load_settings() -> BreakdownSettings:
    min_chars = read_int_env("BREAKDOWN_MIN_CHARS_PER_CHUNK", DEFAULT_MIN_CHARS_PER_CHUNK)
    max_chars = read_int_env("BREAKDOWN_MAX_CHARS_PER_CHUNK", DEFAULT_MAX_CHARS_PER_CHUNK)
    if min_chars > max_chars:
        min_chars = max_chars

    max_retries_raw = os.getenv("BREAKDOWN_LLM_MAX_RETRIES")
    max_retries = DEFAULT_LLM_MAX_RETRIES
    if max_retries_raw is not None:
        try:
            max_retries = max(0, int(max_retries_raw.strip()))
        except ValueError:
            max_retries = DEFAULT_LLM_MAX_RETRIES

    return BreakdownSettings(
        min_chars_per_chunk=min_chars,
        max_chars_per_chunk=max_chars,
        chars_per_page=read_int_env("BREAKDOWN_CHARS_PER_PAGE", DEFAULT_CHARS_PER_PAGE),
        stale_job_timeout_seconds=read_int_env(
            "BREAKDOWN_STALE_JOB_TIMEOUT_SECONDS",
            DEFAULT_STALE_JOB_TIMEOUT_SECONDS,
        ),
        extraction_concurrency=read_int_env(
            "BREAKDOWN_EXTRACTION_CONCURRENCY",
            DEFAULT_EXTRACTION_CONCURRENCY,
        ),
        llm_model=read_str_env("BREAKDOWN_LLM_MODEL") or DEFAULT_LLM_MODEL,
        llm_base_url=read_str_env("BREAKDOWN_LLM_BASE_URL"),
        llm_api_key=read_str_env("BREAKDOWN_LLM_API_KEY", "OPENAI_API_KEY"),
        llm_max_tokens=read_int_env("BREAKDOWN_LLM_MAX_TOKENS", DEFAULT_LLM_MAX_TOKENS),
        llm_temperature=read_float_env(
            "BREAKDOWN_LLM_TEMPERATURE",
            DEFAULT_LLM_TEMPERATURE,
            allow_zero=True,
        ),
        llm_timeout_seconds=read_float_env("BREAKDOWN_LLM_TIMEOUT_SECONDS", DEFAULT_LLM_TIMEOUT_SECONDS),
        llm_max_retries=max_retries,
    )
