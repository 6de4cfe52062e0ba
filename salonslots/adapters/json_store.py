"""
Appointment store backed by a JSON file, for demos and offline testing.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Collection, Dict, List, Mapping, Optional

from pendulum import DateTime

from ..domain.clock import parse_instant
from ..domain.exceptions import AppointmentSourceError
from ..domain.models import Appointment

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_appointments.json"


class JsonAppointmentStore:
    """
    Mock store that serves appointment rows from a JSON file.

    The file holds a list of rows in the same shape the hosted store
    returns, so records go through the same normalization. The range and
    status filters are applied locally to mimic the server.
    """

    def __init__(self, data_file: Path | None = None):
        """
        Initialize the mock store.

        Args:
            data_file: JSON file with appointment rows; defaults to the
                bundled sample data
        """
        self.data_file = Path(data_file) if data_file else DEFAULT_DATA_FILE

    def _load_rows(self) -> List[Dict[str, Any]]:
        if not self.data_file.exists():
            raise AppointmentSourceError(f"Mock data file not found: {self.data_file}")

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                rows = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AppointmentSourceError(f"Could not read mock data {self.data_file}: {e}") from e

        if not isinstance(rows, list):
            raise AppointmentSourceError("Mock data file must contain a list of appointments.")

        return rows

    async def fetch_appointments(
        self,
        *,
        start: DateTime,
        end: DateTime,
        statuses: Collection[str],
        service_id: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Load appointments that start within [start, end] and have a wanted status.

        Rows with an unparseable start are passed through untouched; the busy
        index decides what to do with them.
        """
        wanted = {status.lower() for status in statuses}
        appointments: List[Appointment] = []

        for row in self._load_rows():
            if not isinstance(row, Mapping):
                continue

            if str(row.get("status") or "").lower() not in wanted:
                continue

            if service_id and str(row.get("service_id")) != str(service_id):
                continue

            row_start = parse_instant(row.get("scheduled_at") or row.get("starts_at"))
            if row_start is not None and not (start <= row_start <= end):
                continue

            appointments.append(Appointment.from_record(row))

        logger.debug("Loaded %d mock appointments from %s", len(appointments), self.data_file)
        return appointments
