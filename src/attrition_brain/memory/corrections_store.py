"""Human reclassifications of exit comments (comment text -> category).

Read once per run as an immutable snapshot; written back with a single
merge-by-key once the user accepts new reclassifications.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

logger = logging.getLogger(__name__)


class CorrectionsStore:
    """JSON-file backed correction map."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Could not read corrections from %s: using none", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Corrections file %s is not a JSON object: ignoring", self._path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def snapshot(self) -> Mapping[str, str]:
        """Read-only view of the stored corrections as of now."""
        with self._lock:
            return MappingProxyType(self._read())

    def merge(self, updates: Mapping[str, str]) -> dict[str, str]:
        """Merge ``updates`` into the store (existing keys overwritten).

        The file is replaced atomically.

        Returns:
            The full map after the merge.
        """
        with self._lock:
            merged = self._read()
            merged.update({str(k): str(v) for k, v in updates.items()})

            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".corrections-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(merged, fh, ensure_ascii=False, indent=2, sort_keys=True)
                os.replace(tmp, self._path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise

        logger.info("Merged %d correction(s) into %s (%d total)", len(updates), self._path, len(merged))
        return merged
