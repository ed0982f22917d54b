from __future__ import annotations

import os
from dataclasses import dataclass


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _env_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = int(raw)
        except Exception as e:
            raise ValueError(f"Invalid integer value for {name}: {raw!r}") from e
    if min_value is not None and value < min_value:
        raise ValueError(f"{name} must be >= {min_value} (got {value})")
    if max_value is not None and value > max_value:
        raise ValueError(f"{name} must be <= {max_value} (got {value})")
    return value


def _env_float(name: str, default: float, *, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        value = float(default)
    else:
        try:
            value = float(raw)
        except Exception as e:
            raise ValueError(f"Invalid float value for {name}: {raw!r}") from e
    if min_value is not None and value < min_value:
        raise ValueError(f"{name} must be >= {min_value} (got {value})")
    if max_value is not None and value > max_value:
        raise ValueError(f"{name} must be <= {max_value} (got {value})")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {raw!r}")


def _resolve_identifier_backend(raw: str, *, has_llm: bool) -> str:
    value = (raw or "").strip().lower() or "auto"
    if value not in {"auto", "llm", "rules"}:
        raise ValueError("BIBCHECK_IDENTIFIER_BACKEND must be 'auto', 'llm', or 'rules'.")
    if value == "auto":
        return "llm" if has_llm else "rules"
    return value


@dataclass(frozen=True)
class Settings:
    log_level: str

    api_timeout_seconds: float
    fetch_timeout_seconds: float
    fetch_max_mb: int
    llm_timeout_seconds: float
    fanout_timeout_seconds: float
    fanout_max_workers: int

    user_agent: str
    crossref_mailto: str
    crossref_rows: int
    match_threshold: float
    match_tie_epsilon: float

    elsevier_enabled: bool
    elsevier_api_key: str
    elsevier_base_url: str

    openrouter_api_key: str
    llm_base_url: str
    llm_model: str
    llm_compare_model: str
    llm_search_model: str
    document_max_chars: int
    identifier_backend: str

    @classmethod
    def from_env(cls) -> "Settings":
        log_level = _env_str("BIBCHECK_LOG_LEVEL", "INFO")

        api_timeout_seconds = _env_float("BIBCHECK_API_TIMEOUT_SECONDS", 20.0, min_value=2.0, max_value=120.0)
        fetch_timeout_seconds = _env_float("BIBCHECK_FETCH_TIMEOUT_SECONDS", 10.0, min_value=1.0, max_value=120.0)
        fetch_max_mb = _env_int("BIBCHECK_FETCH_MAX_MB", 20, min_value=1, max_value=500)
        llm_timeout_seconds = _env_float("BIBCHECK_LLM_TIMEOUT_SECONDS", 30.0, min_value=5.0, max_value=60.0)
        fanout_timeout_seconds = _env_float("BIBCHECK_FANOUT_TIMEOUT_SECONDS", 30.0, min_value=1.0, max_value=600.0)
        fanout_max_workers = _env_int("BIBCHECK_FANOUT_MAX_WORKERS", 8, min_value=1, max_value=64)

        crossref_mailto = _env_str("BIBCHECK_CROSSREF_MAILTO", "")
        user_agent = _env_str(
            "BIBCHECK_USER_AGENT",
            f"bibcheck/0.1 (mailto:{crossref_mailto})" if crossref_mailto else "bibcheck/0.1",
        )
        # Two rows are the minimum needed to detect a tie between the top candidates.
        crossref_rows = _env_int("BIBCHECK_CROSSREF_ROWS", 2, min_value=2, max_value=20)
        match_threshold = _env_float("BIBCHECK_MATCH_THRESHOLD", 85.0, min_value=0.0, max_value=1000.0)
        match_tie_epsilon = _env_float("BIBCHECK_MATCH_TIE_EPSILON", 0.01, min_value=0.0, max_value=100.0)

        elsevier_api_key = _env_str("ELSEVIER_API_KEY", "")
        elsevier_enabled = _env_bool("BIBCHECK_ELSEVIER_ENABLED", bool(elsevier_api_key))
        if elsevier_enabled and not elsevier_api_key:
            raise ValueError("BIBCHECK_ELSEVIER_ENABLED requires ELSEVIER_API_KEY.")
        elsevier_base_url = _env_str("BIBCHECK_ELSEVIER_BASE_URL", "https://api.elsevier.com").rstrip("/")

        openrouter_api_key = _env_str("OPENROUTER_API_KEY", "")
        llm_base_url = _env_str("BIBCHECK_LLM_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
        llm_model = _env_str("BIBCHECK_LLM_MODEL", "google/gemini-2.5-flash")
        llm_compare_model = _env_str("BIBCHECK_LLM_COMPARE_MODEL", "google/gemini-2.5-pro")
        llm_search_model = _env_str("BIBCHECK_LLM_SEARCH_MODEL", "perplexity/sonar-pro")
        document_max_chars = _env_int("BIBCHECK_DOCUMENT_MAX_CHARS", 40_000, min_value=1000, max_value=500_000)
        identifier_backend = _resolve_identifier_backend(
            _env_str("BIBCHECK_IDENTIFIER_BACKEND", "auto"),
            has_llm=bool(openrouter_api_key),
        )

        return cls(
            log_level=log_level,
            api_timeout_seconds=api_timeout_seconds,
            fetch_timeout_seconds=fetch_timeout_seconds,
            fetch_max_mb=fetch_max_mb,
            llm_timeout_seconds=llm_timeout_seconds,
            fanout_timeout_seconds=fanout_timeout_seconds,
            fanout_max_workers=fanout_max_workers,
            user_agent=user_agent,
            crossref_mailto=crossref_mailto,
            crossref_rows=crossref_rows,
            match_threshold=match_threshold,
            match_tie_epsilon=match_tie_epsilon,
            elsevier_enabled=elsevier_enabled,
            elsevier_api_key=elsevier_api_key,
            elsevier_base_url=elsevier_base_url,
            openrouter_api_key=openrouter_api_key,
            llm_base_url=llm_base_url,
            llm_model=llm_model,
            llm_compare_model=llm_compare_model,
            llm_search_model=llm_search_model,
            document_max_chars=document_max_chars,
            identifier_backend=identifier_backend,
        )
