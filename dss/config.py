"""Runtime settings read from the environment."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    risk_window_days: int = Field(default=30, ge=1)
    max_conditions: int = Field(default=5, ge=1)
    analysis_timeout_seconds: float = Field(default=10.0, gt=0)
    knowledge_base_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from ``DSS_*`` environment variables.

        Unset variables keep their defaults. Invalid values raise a pydantic
        ``ValidationError`` at startup.
        """
        env = {
            "risk_window_days": os.getenv("DSS_RISK_WINDOW_DAYS"),
            "max_conditions": os.getenv("DSS_MAX_CONDITIONS"),
            "analysis_timeout_seconds": os.getenv("DSS_ANALYSIS_TIMEOUT"),
            "knowledge_base_path": os.getenv("DSS_KNOWLEDGE_BASE_PATH"),
        }
        return cls(**{k: v for k, v in env.items() if v})
