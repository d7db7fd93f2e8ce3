"""Dataset repository - output records as JSON Lines"""
import asyncio
import json
from pathlib import Path
from typing import Any, Optional

from harvester.core.config import settings
from harvester.core.logging import logger


class DatasetRepository:
    """Append-only record sink

    Records are owned by the repository once emitted; each is written as one
    JSON line. Writes are serialized so concurrent workers never interleave.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.dataset_path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self.count = 0

    async def emit(self, record: dict[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False, default=str)
        async with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
            self.count += 1
        logger.debug(f"[DATASET] Pushed record #{self.count}")

    def read_all(self) -> list[dict[str, Any]]:
        """Every record written so far (empty when the file does not exist)."""
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
