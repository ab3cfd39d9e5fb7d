"""Send statistics persisted next to the env file."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

STATS_FILE = Path(".stats.json")


class StatsSnapshot(BaseModel):
    total_emails_sent: int = 0
    last_sent_date: Optional[str] = None


class Stats:
    """Lock-guarded counters, written to disk after every successful send."""

    def __init__(self, path: Path = STATS_FILE) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._snapshot = StatsSnapshot()

    def load(self) -> None:
        if not self.path.exists():
            return
        try:
            snapshot = StatsSnapshot.model_validate_json(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return
        with self._lock:
            self._snapshot = snapshot
        logger.info(
            "Loaded statistics: %d emails sent, last sent: %s",
            snapshot.total_emails_sent,
            snapshot.last_sent_date,
        )

    def record_send(self, recipients: int, when: datetime) -> StatsSnapshot:
        with self._lock:
            self._snapshot = StatsSnapshot(
                total_emails_sent=self._snapshot.total_emails_sent + recipients,
                last_sent_date=when.isoformat(timespec="seconds"),
            )
            snapshot = self._snapshot
        self._save(snapshot)
        return snapshot

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return self._snapshot.model_copy()

    def _save(self, snapshot: StatsSnapshot) -> None:
        try:
            self.path.write_text(json.dumps(snapshot.model_dump(), indent=2))
        except OSError as e:
            logger.warning("Failed to save statistics: %s", e)


stats = Stats()
