"""Environment driven configuration."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Config:
    DATABASE_PATH = os.environ.get("RESORT_DB_PATH", "resort.db")
    TIMEZONE = os.environ.get("RESORT_TIMEZONE", "Asia/Manila")
    LOG_LEVEL = os.environ.get("RESORT_LOG_LEVEL", "INFO").upper()
    LOG_FILE = os.environ.get("RESORT_LOG_FILE") or None
    SECRET_KEY = os.environ.get("SECRET_KEY", "resort-dev-secret")
    REFUND_RATE = _float_env("RESORT_REFUND_RATE", 0.5)


def load_config() -> Config:
    return Config()
