# usage_tracker/config.py
import os
from pathlib import Path


class Settings:
    # Storage (one JSON file per day under this directory)
    DATA_DIR: Path = Path(os.getenv("USAGE_DATA_DIR", "./data/daily-usage"))

    # How often dirty days are written to disk
    FLUSH_INTERVAL_SECONDS: float = float(os.getenv("USAGE_FLUSH_INTERVAL_SECONDS", "60"))

    # Mount point of the tracking/query routes inside the host app
    ROUTE_PREFIX: str = os.getenv("USAGE_ROUTE_PREFIX", "/api/plugins/daily-usage-tracker")

    # Runtime info reported by /version
    HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("APP_PORT", "8001"))
    WORKERS: int = int(os.getenv("APP_WORKERS", "1"))

    def __init__(
        self,
        data_dir: str | Path | None = None,
        flush_interval_seconds: float | None = None,
        route_prefix: str | None = None,
    ):
        if data_dir is not None:
            self.DATA_DIR = Path(data_dir)
        if flush_interval_seconds is not None:
            self.FLUSH_INTERVAL_SECONDS = float(flush_interval_seconds)
        if route_prefix is not None:
            self.ROUTE_PREFIX = route_prefix


settings = Settings()
