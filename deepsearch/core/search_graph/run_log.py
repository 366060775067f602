"""
Run log - structured diagnostic events for one search run, one JSON object
per line.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from loguru import logger
from pydantic import BaseModel


class RunLog:
    """Appends {name, content, timestamp} entries to <log_dir>/<run_id>.jsonl."""

    def __init__(self, log_dir: Optional[str], run_id: str):
        self.run_id = run_id
        self.path: Optional[Path] = None
        if log_dir:
            self.path = Path(log_dir) / f"{run_id}.jsonl"

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def write(self, name: str, content: Any):
        if self.path is None:
            return

        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")

        entry = {"name": name, "content": content, "timestamp": datetime.utcnow().isoformat()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            logger.warning(f"[RunLog] Failed to write '{name}' to {self.path}: {e}")
