"""
Runtime configuration for the CFP pipeline.

Values come from the environment (a project-level .env is loaded first).
Secrets (OPENROUTER_API_KEY, SERPAPI_API_KEY, WIKIDATA_BOT_*) are read by the
clients that need them and never stored here.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Default roster of fingerprint judges (OpenRouter model ids)
DEFAULT_MODELS = [
    "openai/gpt-4-turbo",
    "anthropic/claude-3-opus",
    "google/gemini-2.5-flash",
]

VALID_TARGETS = ("test", "production")


def load_env() -> None:
    """Load the project .env into os.environ (existing values win)."""
    load_dotenv(os.path.join(_PROJECT_ROOT, ".env"))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def parse_model_weights(raw: Optional[str]) -> Dict[str, float]:
    """Parse 'model=weight,model=weight' into a dict. Empty -> {} (uniform)."""
    weights: Dict[str, float] = {}
    if not raw:
        return weights
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ValueError(f"Invalid model weight entry {part!r}; expected model=weight")
        model, value = part.rsplit("=", 1)
        try:
            weight = float(value)
        except ValueError:
            raise ValueError(f"Invalid weight for {model!r}: {value!r}")
        if weight < 0:
            raise ValueError(f"Weight for {model!r} must be >= 0")
        weights[model.strip()] = weight
    return weights


@dataclass
class CFPConfig:
    """
    Recognized pipeline options.

    Attributes:
        target: 'test' or 'production' knowledge base.
        dry_run: Authenticate and validate but never submit edits.
        max_properties: Cap on distinct claim properties per entity.
        max_qids: Cap on item-valued (QID) claims per entity.
        batch_size: Worker pool size for scheduled batches.
        catch_missed: Also pick up businesses never crawled or stale > 30 days.
        models: Fingerprint judge roster.
        model_weights: Per-model aggregation weights; missing models weigh 1.0.
        query_timeout: Seconds to wait on a single fan-out unit.
    """
    target: str = "test"
    dry_run: bool = False
    max_properties: int = 10
    max_qids: int = 5
    batch_size: int = 5
    catch_missed: bool = True
    models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    model_weights: Dict[str, float] = field(default_factory=dict)
    query_timeout: int = 60

    def __post_init__(self):
        if self.target not in VALID_TARGETS:
            raise ValueError(f"target must be one of {VALID_TARGETS}, got {self.target!r}")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.max_properties < 1 or self.max_qids < 0:
            raise ValueError("max_properties must be >= 1 and max_qids >= 0")
        if not self.models:
            raise ValueError("at least one model is required")

    @classmethod
    def from_env(cls) -> "CFPConfig":
        load_env()
        models_raw = os.getenv("CFP_MODELS", "")
        models = [m.strip() for m in models_raw.split(",") if m.strip()] or list(DEFAULT_MODELS)
        return cls(
            target=(os.getenv("CFP_TARGET") or "test").strip().lower(),
            dry_run=_env_bool("CFP_DRY_RUN", False),
            max_properties=_env_int("CFP_MAX_PROPERTIES", 10),
            max_qids=_env_int("CFP_MAX_QIDS", 5, minimum=0),
            batch_size=_env_int("CFP_BATCH_SIZE", 5),
            catch_missed=_env_bool("CFP_CATCH_MISSED", True),
            models=models,
            model_weights=parse_model_weights(os.getenv("CFP_MODEL_WEIGHTS")),
            query_timeout=_env_int("CFP_QUERY_TIMEOUT", 60),
        )

    def to_dict(self) -> Dict:
        return {
            "target": self.target,
            "dry_run": self.dry_run,
            "max_properties": self.max_properties,
            "max_qids": self.max_qids,
            "batch_size": self.batch_size,
            "catch_missed": self.catch_missed,
            "models": list(self.models),
            "model_weights": dict(self.model_weights),
            "query_timeout": self.query_timeout,
        }
