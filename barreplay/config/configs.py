from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from barreplay.core.timeframe import Timeframe

"""
Here, we collect all the different configs
"""


@dataclass(frozen=True)
class RunContext:
    run_id: str
    seed: int = 42


# --- Data Section ---


class ReaderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chunk_bytes: int = Field(default=1 << 20, gt=0)  # tail window / backfill window size
    read_timeout_s: float = Field(default=10.0, gt=0)
    backfill_max_attempts: int = Field(default=50, ge=1)


class SanitizerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True


# --- Cache Section ---


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: Path = Path("cache/ohlc_cache.sqlite3")
    batch_size: int = Field(default=2000, gt=0)  # rows per commit during ingest
    default_limit: int = Field(default=1000, gt=0)
    query_timeout_s: float = Field(default=10.0, gt=0)
    ingest_timeout_s: float = Field(default=300.0, gt=0)
    journal_mode: Literal["WAL", "DELETE", "TRUNCATE", "MEMORY"] = "WAL"
    synchronous: Literal["OFF", "NORMAL", "FULL"] = "NORMAL"


# --- Replay Section ---


class ReplayConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    speed: float = Field(default=1.0, gt=0)
    frame_interval_ms: int = Field(default=16, gt=0)
    realtime: bool = False  # 1:1 mode pins the speed multiplier to 1
    timeframe: Timeframe = Timeframe.M1

    @field_validator("timeframe", mode="before")
    @classmethod
    def _parse_timeframe(cls, value: object) -> object:
        if isinstance(value, str):
            return Timeframe.parse(value)
        return value


# --- Telemetry Section ---


class TelemetryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sink_path: Optional[Path] = None  # None -> stdlib logging only
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reader: ReaderConfig = Field(default_factory=ReaderConfig)
    sanitizer: SanitizerConfig = Field(default_factory=SanitizerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
