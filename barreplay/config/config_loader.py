"""
Purpose:
    - Load a TOML config file
    - Apply dotted KEY=VALUE overrides (CLI --set)
    - Validate into AppConfig; unknown keys are rejected
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from barreplay.config.configs import AppConfig
from barreplay.core.utility import deep_merge, insert_path, validation_error_parser
from barreplay.errors.errors import ConfigurationError


class ConfigLoader:
    """
    Config-loader; loading toml file.
    """

    def __init__(self, base_dir: str | Path = ".") -> None:
        self._base_dir = Path(base_dir)

    def load(self, file_name: str | Path) -> dict[str, Any]:
        path = Path(file_name)
        if not path.is_absolute():
            path = self._base_dir / path

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("rb") as f:
            try:
                return tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigurationError(
                    f"Invalid TOML in {path}: {exc}", component="config"
                ) from exc

    def load_app_config(
        self,
        file_name: Optional[str | Path] = None,
        overrides: Iterable[str] = (),
    ) -> AppConfig:
        data: Mapping[str, Any] = self.load(file_name) if file_name is not None else {}
        data = deep_merge(data, parse_overrides(overrides))
        return build_app_config(data)


def parse_overrides(pairs: Iterable[str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for item in pairs:
        key, sep, value = item.partition("=")
        if sep == "":
            raise ConfigurationError(f"--set requires KEY=VALUE format (got {item!r})")
        insert_path(overrides, key, value)
    return overrides


def build_app_config(data: Mapping[str, Any]) -> AppConfig:
    try:
        return AppConfig.model_validate(dict(data))
    except ValidationError as exc:
        errors = validation_error_parser(exc)
        first = errors[0] if errors else {"path": "", "message": str(exc)}
        raise ConfigurationError(
            f"Invalid configuration at '{first['path']}': {first['message']}",
            field=first["path"] or None,
            component="config",
            details={"errors": errors},
        ) from exc
