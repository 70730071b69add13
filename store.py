"""
JSON file persistence for the action collection.

The whole collection lives in one JSON array. Every read loads the full file
and every write replaces it, so this is only suitable for a single writer.
"""
import json
import logging
import math
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

OK = "ok"
INITIALIZED = "initialized"
RECOVERED = "recovered"


class StoreError(Exception):
    pass


@dataclass(frozen=True)
class ReadResult:
    actions: list = field(default_factory=list)
    status: str = OK
    backup_path: Optional[Path] = None

    @property
    def recovered(self) -> bool:
        return self.status == RECOVERED


def _reject_constant(name):
    raise ValueError(f"non-finite number {name} is not valid JSON")


def _finite_float(text):
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number {text} is out of range")
    return value


def highest_id(actions: list) -> int:
    ids = [a.get("id") for a in actions if isinstance(a, dict)]
    return max((i for i in ids if isinstance(i, int) and not isinstance(i, bool)), default=0)


class ActionStore:
    """Reads and writes the collection at ``path``."""

    def __init__(self, path):
        self.path = Path(path)
        self.id_watermark = 0

    def read(self) -> ReadResult:
        if not self.path.exists():
            logger.info("Data file %s not found, creating it with an empty array", self.path)
            self.write([])
            return ReadResult([], INITIALIZED)

        raw = self.path.read_bytes()
        try:
            data = json.loads(raw, parse_constant=_reject_constant, parse_float=_finite_float)
        except ValueError as exc:
            logger.warning("Data file %s is not valid JSON: %s", self.path, exc)
            return self._recover()

        if not isinstance(data, list):
            logger.warning("Data file %s does not hold an array", self.path)
            return self._recover()

        self.id_watermark = max(self.id_watermark, highest_id(data))
        return ReadResult(data, OK)

    def write(self, actions) -> None:
        if not isinstance(actions, list):
            raise StoreError("Data must be an array")
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(actions, f, indent=2, ensure_ascii=False, allow_nan=False)
            os.replace(tmp, self.path)
        except (OSError, ValueError) as exc:
            logger.error("Failed to write %s: %s", self.path, exc)
            if tmp.exists():
                tmp.unlink()
            raise StoreError(f"Failed to write data: {exc}") from exc
        self.id_watermark = max(self.id_watermark, highest_id(actions))
        logger.info("Wrote %d sustainability actions to %s", len(actions), self.path)

    def _recover(self) -> ReadResult:
        backup = self.path.with_name(f"{self.path.name}.backup.{int(time.time() * 1000)}")
        self.path.rename(backup)
        logger.warning("Corrupted data file backed up to %s", backup)
        # Ids from the discarded file are no longer in the collection.
        self.id_watermark = 0
        self.write([])
        return ReadResult([], RECOVERED, backup)
