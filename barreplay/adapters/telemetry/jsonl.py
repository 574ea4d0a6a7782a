"""JSON Lines Telemetry adapter.

One orjson-encoded object per event, appended to `sink_path`:

    {"component": "cache", "event": "CACHE_HIT", "rows": 500, "run_id": "...", ...}

Values orjson cannot encode natively (paths, for instance) are written with str().
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import orjson

REDACTED = "***REDACTED***"
DEFAULT_SECRET_KEYS = frozenset({"password", "secret", "token"})


class JsonlTelemetry:
    def __init__(
        self,
        run_id: str,
        sink_path: str | Path,
        *,
        component: str | None = None,
        secret_keys: Iterable[str] = DEFAULT_SECRET_KEYS,
    ) -> None:
        self._run_id = str(run_id)
        self._sink_path = Path(sink_path)
        self._sink_path.parent.mkdir(parents=True, exist_ok=True)
        self._component = component
        self._secret_keys = frozenset(secret_keys)

    @property
    def sink_path(self) -> Path:
        return self._sink_path

    def log(self, event: str, **fields: Any) -> None:
        if not event:
            raise ValueError("Telemetry event name must be non-empty")

        component = fields.pop("component", self._component)
        hidden = sorted(k for k in fields if k in self._secret_keys)
        record: dict[str, Any] = {k: REDACTED if k in hidden else v for k, v in fields.items()}
        record.update(
            event=event,
            ts_wall=datetime.now(timezone.utc).isoformat(),
            run_id=self._run_id,
        )
        if component is not None:
            record["component"] = component
        if hidden:
            record["redacted_fields"] = hidden

        payload = orjson.dumps(record, option=orjson.OPT_SORT_KEYS, default=str)
        with self._sink_path.open("ab") as handle:
            handle.write(payload + b"\n")
