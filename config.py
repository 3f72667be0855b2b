import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


@dataclass
class Config:
    board_name: str
    firmware_version: str
    log_level: str
    log_dir: Path
    timezone_name: Optional[str]
    settings_dir: Path
    alarm_check_interval: float
    alarm_default_snooze_min: int
    alarm_max_snooze_count: int
    tools_max_payload: int
    enable_alarm_tools: bool


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    board_name = os.getenv("BOARD_NAME", "deskclock")
    firmware_version = os.getenv("FIRMWARE_VERSION", "0.1.0")
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    timezone_name = os.getenv("TIMEZONE") or None
    settings_dir = Path(os.getenv("SETTINGS_DIR", "data"))
    alarm_check_interval = _get_env_float("ALARM_CHECK_INTERVAL_MS", 1000.0) / 1000.0
    alarm_default_snooze_min = _get_env_int("ALARM_DEFAULT_SNOOZE_MIN", 5)
    alarm_max_snooze_count = _get_env_int("ALARM_MAX_SNOOZE_COUNT", 3)
    tools_max_payload = _get_env_int("TOOLS_MAX_PAYLOAD", 8000)
    enable_alarm_tools = _get_env_bool("ENABLE_ALARM_TOOLS", True)

    if tools_max_payload < 256:
        logging.warning("TOOLS_MAX_PAYLOAD=%s is very small, tools/list may fail", tools_max_payload)

    return Config(
        board_name=board_name,
        firmware_version=firmware_version,
        log_level=log_level,
        log_dir=log_dir,
        timezone_name=timezone_name,
        settings_dir=settings_dir,
        alarm_check_interval=alarm_check_interval,
        alarm_default_snooze_min=alarm_default_snooze_min,
        alarm_max_snooze_count=alarm_max_snooze_count,
        tools_max_payload=tools_max_payload,
        enable_alarm_tools=enable_alarm_tools,
    )


def setup_logging(log_level: str = "INFO", log_dir: Path = Path("logs")) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    log_path = log_dir / "deskclock.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    # stdout carries protocol replies, so the console handler writes to stderr
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
