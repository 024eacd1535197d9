import os
import yaml
from pathlib import Path
from pydantic import BaseModel, Field
from typing import List, Optional
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "tournament.yaml"


class ScoringTable(BaseModel):
    """Leaderboard points awarded per tournament outcome."""
    win: int = 5
    final: int = 0
    semifinal: int = 0


class Settings(BaseModel):
    database_url: Optional[str] = None  # None -> in-process store
    sweep_interval_seconds: float = 300.0
    default_round_deadline_hours: int = Field(default=48, gt=0)
    store_timeout_seconds: float = 10.0
    leaderboard_limit: int = 50
    scoring: ScoringTable = Field(default_factory=ScoringTable)
    dev_seed: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"])

    @property
    def uses_database(self) -> bool:
        return bool(self.database_url)


def _env_overrides() -> dict:
    overrides = {}
    if os.getenv("DATABASE_URL"):
        overrides["database_url"] = os.getenv("DATABASE_URL")
    if os.getenv("SWEEP_INTERVAL_SECONDS"):
        overrides["sweep_interval_seconds"] = float(os.getenv("SWEEP_INTERVAL_SECONDS"))
    if os.getenv("STORE_TIMEOUT_SECONDS"):
        overrides["store_timeout_seconds"] = float(os.getenv("STORE_TIMEOUT_SECONDS"))
    if os.getenv("TOURNAMENT_DEV_SEED"):
        overrides["dev_seed"] = os.getenv("TOURNAMENT_DEV_SEED").lower() == "true"
    return overrides


def load_settings(path: Optional[str] = None, use_env: bool = True) -> Settings:
    """
    Read settings from the YAML file (if present), then apply environment overrides.
    Returns a fresh instance on every call.
    """
    data = {}
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

    if use_env:
        load_dotenv()
        data.update(_env_overrides())

    return Settings(**data)
