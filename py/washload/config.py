"""設定ファイルから負荷試験の起動設定を読み込む。"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomllib


@dataclass(frozen=True)
class ControllerConfig:
    host: str
    port: int
    connect_timeout: float
    io_timeout: float
    read_timeout: float
    close_grace: float
    delete_reads_reply: bool


@dataclass(frozen=True)
class RoutineConfig:
    queue_interval: float
    get_interval: float
    move_interval: float
    package_number: int
    cleanup_package: int
    delete_after_enqueue: bool
    allow_head_position: bool
    autostart: bool


@dataclass(frozen=True)
class ControlConfig:
    listen_host: str
    listen_port: int


@dataclass(frozen=True)
class OutputConfig:
    log_dir: Path
    sink_capacity: int
    log_level: str


@dataclass(frozen=True)
class LoadTestConfig:
    controller: ControllerConfig
    routines: RoutineConfig
    control: ControlConfig
    output: OutputConfig


class ConfigError(ValueError):
    """設定値がおかしいときに投げる例外。"""


def load_config(path: str | Path) -> LoadTestConfig:
    data = _read_toml(path)
    return build_config(data, base_dir=Path(path).resolve().parent)


def build_config(data: dict[str, Any], *, base_dir: Path | None = None) -> LoadTestConfig:
    controller_section = _Section.of(data, "controller")
    controller = ControllerConfig(
        host=controller_section.text("host", "192.168.1.80"),
        port=controller_section.port("port", 20250),
        connect_timeout=controller_section.seconds("connect_timeout", 3.0),
        io_timeout=controller_section.seconds("io_timeout", 1.5),
        read_timeout=controller_section.seconds("read_timeout", 3.0),
        close_grace=controller_section.seconds("close_grace", 5.0, allow_zero=True),
        delete_reads_reply=controller_section.flag("delete_reads_reply", True),
    )

    intervals = _Section.of(data, "intervals")
    routine_section = _Section.of(data, "routines")
    routines = RoutineConfig(
        queue_interval=intervals.seconds("queue", 2.0),
        get_interval=intervals.seconds("get", 4.0),
        move_interval=intervals.seconds("move", 6.0),
        package_number=routine_section.count("package_number", 1),
        cleanup_package=routine_section.count("cleanup_package", 1),
        delete_after_enqueue=routine_section.flag("delete_after_enqueue", True),
        allow_head_position=routine_section.flag("allow_head_position", True),
        autostart=routine_section.flag("autostart", True),
    )

    control_section = _Section.of(data, "control")
    control = ControlConfig(
        listen_host=control_section.text("listen_host", "0.0.0.0"),
        listen_port=control_section.port("listen_port", 3001),
    )

    output_section = _Section.of(data, "output")
    log_dir = Path(output_section.text("log_dir", "."))
    # ファイル内の相対パスは設定ファイルの置き場所から解決する
    if base_dir is not None and not log_dir.is_absolute() and "log_dir" in output_section:
        log_dir = base_dir / log_dir
    output = OutputConfig(
        log_dir=log_dir,
        sink_capacity=output_section.count("sink_capacity", 100),
        log_level=output_section.text("log_level", "INFO").upper(),
    )

    return LoadTestConfig(controller=controller, routines=routines, control=control, output=output)


def parse_interval(text: str) -> float:
    """Parse an interval in seconds such as ``"2"`` or ``"0.25"``."""

    raw = str(text).strip()
    if not raw:
        raise ConfigError("no time span specified")
    try:
        seconds = float(raw)
    except ValueError as exc:
        raise ConfigError(f"interval must be a number of seconds, got {text!r}") from exc
    if not math.isfinite(seconds) or seconds <= 0:
        raise ConfigError(f"interval must be a positive number of seconds, got {text!r}")
    return seconds


def _read_toml(path: str | Path) -> dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise ConfigError(f"configuration file not found: {cfg_path}")
    try:
        with cfg_path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {cfg_path}: {exc}") from exc


class _Section:
    """One TOML table; every key is optional and errors name ``section.key``."""

    def __init__(self, name: str, values: dict[str, Any]) -> None:
        self.name = name
        self._values = values

    @classmethod
    def of(cls, data: dict[str, Any], name: str) -> "_Section":
        values = data.get(name, {})
        if not isinstance(values, dict):
            raise ConfigError(f"[{name}] must be a table")
        return cls(name, values)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def _invalid(self, key: str, expected: str) -> ConfigError:
        return ConfigError(f"{self.name}.{key} must be {expected}, got {self._values[key]!r}")

    def text(self, key: str, default: str) -> str:
        if key not in self._values:
            return default
        value = self._values[key]
        if not isinstance(value, str) or not value.strip():
            raise self._invalid(key, "a non-empty string")
        return value.strip()

    def flag(self, key: str, default: bool) -> bool:
        value = self._values.get(key, default)
        if not isinstance(value, bool):
            raise self._invalid(key, "true or false")
        return value

    def count(self, key: str, default: int) -> int:
        value = self._values.get(key, default)
        # bool は int のサブクラスなので先に弾く
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise self._invalid(key, "a positive integer")
        return value

    def port(self, key: str, default: int) -> int:
        value = self._values.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 65535:
            raise self._invalid(key, "a port between 1 and 65535")
        return value

    def seconds(self, key: str, default: float, *, allow_zero: bool = False) -> float:
        value = self._values.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self._invalid(key, "a number of seconds")
        seconds = float(value)
        if not math.isfinite(seconds) or seconds < 0 or (seconds == 0 and not allow_zero):
            raise self._invalid(key, "a positive number of seconds")
        return seconds
