"""Backend configuration for the posturography analyzer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except Exception:
        return default
    return val if val > 0 else default


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com").rstrip("/")
LLM_TIMEOUT_S = _float_env("BARO_LLM_TIMEOUT_S", 55.0)
# Whole-request budget for /api/analyze, mirroring the hosting platform's limit.
ANALYZE_TIMEOUT_S = _float_env("BARO_ANALYZE_TIMEOUT_S", 60.0)

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("BARO_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

# Lives outside the web root: one directory above the working directory.
SETTINGS_PATH = Path(
    os.getenv("BARO_CONFIG_PATH", str(Path.cwd().parent / "Config" / "settings.json"))
)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_LANGUAGE = "English"

SETTINGS_KEYS = ("api_key", "model", "language", "vector_store_id", "verbose_openai")

SettingsSource = Callable[[], Mapping[str, Any]]


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    model: str
    language: str
    vector_store_id: str | None
    verbose_openai: bool = False

    def public(self) -> dict[str, Any]:
        """Non-secret view for the config endpoint."""
        return {
            "model": self.model,
            "language": self.language,
            "vectorStoreId": self.vector_store_id,
            "hasApiKey": bool(self.api_key),
        }


@dataclass(frozen=True)
class BootstrapResult:
    saved: bool
    already_configured: bool
    last4: str | None = None


def env_source() -> dict[str, Any]:
    return {
        "api_key": os.getenv("OPENAI_API_KEY"),
        "model": os.getenv("MODEL"),
        "language": os.getenv("LANGUAGE"),
        "vector_store_id": os.getenv("VECTOR_STORE_ID"),
        "verbose_openai": os.getenv("VERBOSE_OPENAI"),
    }


def _read_settings_file(path: Path) -> dict[str, Any]:
    try:
        if not path.exists():
            return {}
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def file_source(path: Path | None = None) -> SettingsSource:
    def read() -> dict[str, Any]:
        data = _read_settings_file(path or SETTINGS_PATH)
        llm = data.get("LLMConfig")
        if not isinstance(llm, dict):
            llm = {}
        return {
            "api_key": llm.get("ApiKey"),
            "model": llm.get("Model"),
            "language": data.get("Language"),
            "vector_store_id": data.get("VectorStoreId"),
            "verbose_openai": data.get("VerboseOpenAI"),
        }

    return read


def client_source(values: Mapping[str, Any] | None) -> SettingsSource:
    """User-entered settings sent by the browser with a request."""
    snapshot = dict(values or {})

    def read() -> dict[str, Any]:
        return {
            "api_key": snapshot.get("apiKey"),
            "model": snapshot.get("model"),
            "language": snapshot.get("language"),
            "vector_store_id": snapshot.get("vectorStoreId"),
        }

    return read


def default_source() -> dict[str, Any]:
    return {
        "model": DEFAULT_MODEL,
        "language": DEFAULT_LANGUAGE,
        "verbose_openai": False,
    }


def _defined(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def resolve_settings(sources: Sequence[SettingsSource]) -> Settings:
    """First defined value per key wins, in source order."""
    resolved: dict[str, Any] = {}
    for source in sources:
        try:
            values = source() or {}
        except Exception:
            continue
        for key in SETTINGS_KEYS:
            if key in resolved:
                continue
            value = values.get(key)
            if _defined(value):
                resolved[key] = value.strip() if isinstance(value, str) else value

    return Settings(
        api_key=resolved.get("api_key"),
        model=resolved.get("model") or DEFAULT_MODEL,
        language=resolved.get("language") or DEFAULT_LANGUAGE,
        vector_store_id=resolved.get("vector_store_id"),
        verbose_openai=_truthy(resolved.get("verbose_openai")),
    )


def default_sources(client: Mapping[str, Any] | None = None) -> list[SettingsSource]:
    return [env_source, file_source(), client_source(client), default_source]


def get_default_settings(client: Mapping[str, Any] | None = None) -> Settings:
    return resolve_settings(default_sources(client))


def bootstrap_api_key(
    *,
    api_key: str,
    model: str = "",
    language: str = "",
    vector_store_id: str = "",
    rotate: bool = False,
    path: Path | None = None,
) -> BootstrapResult:
    """
    First-run provisioning of the shared config file.

    An already stored key is never overwritten unless `rotate` is set.
    """
    api_key = (api_key or "").strip()
    if not api_key:
        raise ValueError("Missing apiKey")

    target = path or SETTINGS_PATH
    data = _read_settings_file(target)
    llm = data.get("LLMConfig")
    if not isinstance(llm, dict):
        llm = {}

    existing = llm.get("ApiKey")
    if isinstance(existing, str) and existing.strip() and not rotate:
        # The stored key is not echoed back, not even partially.
        return BootstrapResult(saved=False, already_configured=True)

    llm["ApiKey"] = api_key
    if (model or "").strip():
        llm["Model"] = model.strip()
    data["LLMConfig"] = llm
    if (language or "").strip():
        data["Language"] = language.strip()
    if (vector_store_id or "").strip():
        data["VectorStoreId"] = vector_store_id.strip()

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return BootstrapResult(saved=True, already_configured=False, last4=api_key[-4:])
