"""Engine configuration.

``EngineConfig`` is immutable. Updates go through :meth:`EngineConfig.merged`,
which builds a new object from the current values plus overrides, so a
reader holding a reference always sees one consistent snapshot.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

DEFAULT_DB_PATH = Path.home() / ".caprec" / "recommendations.db"

ENV_PREFIX = "CAPREC_"

# Dedup policy: the last N recommendations issued to a session.
DEDUP_WINDOW = 10

# Settings never read from the environment.
_ENV_EXCLUDED = frozenset({"dedup_window"})


@dataclass(frozen=True)
class EngineConfig:
    """Tunable knobs for the recommendation engine.

    ``dedup_window`` is a fixed policy (:data:`DEDUP_WINDOW`). It is a field
    only so tests can shrink it; ``from_env`` ignores it.
    """

    max_recommendations: int = 5
    min_confidence_score: float = 0.3
    historical_boost_weight: float = 0.2
    project_context_weight: float = 0.3
    cache_timeout_ms: int = 5 * 60 * 1000

    dedup_window: int = DEDUP_WINDOW
    history_min_samples: int = 2
    history_limit: int = 20
    context_scan_timeout_ms: int = 0  # 0 = wait for the scan

    def __post_init__(self) -> None:
        for name in (
            "max_recommendations",
            "cache_timeout_ms",
            "dedup_window",
            "history_min_samples",
            "history_limit",
            "context_scan_timeout_ms",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

        for name in (
            "min_confidence_score",
            "historical_boost_weight",
            "project_context_weight",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    def merged(self, **overrides: Any) -> EngineConfig:
        """Return a new config with *overrides* applied.

        Unknown keys raise ``TypeError``; ``None`` values are ignored so a
        partially filled mapping can be passed straight through.
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        """Build a config from a mapping, ignoring keys it does not know."""
        known = {f.name for f in fields(cls)}
        return cls().merged(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EngineConfig:
        """Build a config from ``CAPREC_*`` environment variables."""
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name in _ENV_EXCLUDED:
                continue
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            try:
                values[f.name] = float(raw) if f.type == "float" else int(raw)
            except ValueError as e:
                raise ValueError(f"{ENV_PREFIX}{f.name.upper()}={raw!r} is not a number") from e
        return cls().merged(**values)
