"""
Service configuration.

Values come from the environment (or a project-level ``.env``) and are read
once at import time into a frozen settings object.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

_DEFAULT_DATA_PATH = Path(__file__).resolve().parent / "data" / "processed" / "restaurants.json"


@dataclass(frozen=True)
class Settings:
    data_path: Path = Path(os.getenv("RESTAURANTS_DATA_PATH", str(_DEFAULT_DATA_PATH)))
    timezone: str = os.getenv("TIMEZONE", "Asia/Singapore")
    default_page_size: int = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
    max_page_size: int = int(os.getenv("MAX_PAGE_SIZE", "100"))
    open_now_fetch_cap: int = int(os.getenv("OPEN_NOW_FETCH_CAP", "10000"))
    default_max_distance_m: float = float(os.getenv("DEFAULT_MAX_DISTANCE_M", "2000"))
    max_search_results: int = int(os.getenv("MAX_SEARCH_RESULTS", "50"))
    cors_origin: str = os.getenv("CORS_ORIGIN", "http://localhost:3000")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


DEFAULT_SETTINGS = Settings()
