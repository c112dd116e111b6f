"""History configuration models and loader."""

import json
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

VALIDATE_CATEGORY = "validate"


class NotesConfig(BaseModel):
    """Where and how much to store."""
    category: str = VALIDATE_CATEGORY
    max_runs_per_log: int = Field(default=10, gt=0)
    max_output_bytes: int = Field(default=10000, gt=0)
    max_append_attempts: int = Field(default=8, gt=0)
    retry_backoff_ms: int = Field(default=25, ge=0)

    model_config = ConfigDict(extra="forbid")


class RetentionConfig(BaseModel):
    """Thresholds for health warnings. Pruning itself is always explicit."""
    warn_after_days: int = Field(default=30, gt=0)
    warn_after_count: int = Field(default=1000, gt=0)
    warn_after_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    model_config = ConfigDict(extra="forbid")


class HistoryConfig(BaseModel):
    """Validation history configuration."""
    enabled: bool = True
    namespace: str = "pinkas"  # notes refs live under refs/notes/<namespace>/
    notes: NotesConfig = Field(default_factory=NotesConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)

    model_config = ConfigDict(extra="forbid")

    def notes_ref(self, category: Optional[str] = None) -> str:
        """Full notes ref for a category (defaults to the configured one)."""
        return f"refs/notes/{self.namespace}/{category or self.notes.category}"


def load_config(path: Optional[Union[str, Path]] = None) -> HistoryConfig:
    """Load history configuration from a JSON file.

    The file may hold the config object directly or nest it under a
    top-level "history" key. A missing path yields the defaults.

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the file is not valid JSON or fails validation
    """
    if path is None:
        return HistoryConfig()

    config_path = Path(path)
    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {config_path}: {e}")

    if isinstance(data, dict) and "history" in data:
        data = data["history"]
    try:
        return HistoryConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid history config in {config_path}: {e}")
