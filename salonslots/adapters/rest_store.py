"""
REST client for the hosted appointment store.

The store exposes a PostgREST-style API: filters are passed as query
parameters (``starts_at=gte.<iso>``, ``status=in.(a,b)``) and rows come
back as a JSON array.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Collection, Dict, List, Mapping, Optional, Tuple

import requests
from pendulum import DateTime

from ..domain.exceptions import AppointmentSourceError
from ..domain.models import Appointment

logger = logging.getLogger(__name__)


class RestAppointmentStore:
    """
    Client for the appointments table of the hosted data backend.

    Range and status filters are applied server-side; the engine never
    filters by range itself.
    """

    SELECT_COLUMNS = "id,scheduled_at,starts_at,ends_at,status,customer_id,services(buffer_min)"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        table: str = "appointments",
        timeout: int = 30,
        access_token: Optional[str] = None,
    ):
        """
        Initialize the store client.

        Args:
            base_url: Project URL of the data backend
            api_key: Public API key sent with every request
            table: Appointments table name
            timeout: Request timeout in seconds
            access_token: Optional user token; the API key is used otherwise
        """
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.timeout = timeout
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Accept": "application/json",
        }

    def build_params(
        self,
        start: DateTime,
        end: DateTime,
        statuses: Collection[str],
        service_id: Optional[str] = None,
    ) -> List[Tuple[str, str]]:
        """Query parameters selecting the booking window."""
        params = [
            ("select", self.SELECT_COLUMNS),
            ("starts_at", f"gte.{start.in_timezone('UTC').to_iso8601_string()}"),
            ("starts_at", f"lte.{end.in_timezone('UTC').to_iso8601_string()}"),
            ("status", f"in.({','.join(sorted(statuses))})"),
            ("order", "starts_at.asc"),
        ]
        if service_id:
            params.append(("service_id", f"eq.{service_id}"))
        return params

    async def fetch_appointments(
        self,
        *,
        start: DateTime,
        end: DateTime,
        statuses: Collection[str],
        service_id: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Fetch appointments in the window without blocking the event loop.

        Raises:
            AppointmentSourceError: If the request fails or returns bad data
        """
        return await asyncio.to_thread(
            self.get_appointments,
            start=start,
            end=end,
            statuses=statuses,
            service_id=service_id,
        )

    def get_appointments(
        self,
        *,
        start: DateTime,
        end: DateTime,
        statuses: Collection[str],
        service_id: Optional[str] = None,
    ) -> List[Appointment]:
        """Blocking variant of ``fetch_appointments``."""
        url = f"{self.base_url}/rest/v1/{self.table}"

        try:
            response = requests.get(
                url,
                headers=self.headers,
                params=self.build_params(start, end, statuses, service_id),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.RequestException as e:
            raise AppointmentSourceError(f"Failed to fetch appointments: {e}") from e

        except ValueError as e:
            raise AppointmentSourceError(f"Appointment store returned invalid JSON: {e}") from e

        return self._parse_rows(data)

    @staticmethod
    def _parse_rows(data: Any) -> List[Appointment]:
        """
        Normalize the response rows.

        Response format:
        [
            {
                "id": "...",
                "starts_at": "2026-10-20T12:00:00+00:00",
                "ends_at": "2026-10-20T12:30:00+00:00",
                "status": "confirmed",
                "customer_id": "...",
                "services": {"buffer_min": 15}
            }
        ]
        """
        if not isinstance(data, list):
            raise AppointmentSourceError(
                f"Expected a list of appointments, got {type(data).__name__}"
            )

        appointments: List[Appointment] = []
        for row in data:
            if not isinstance(row, Mapping):
                logger.warning("Ignoring non-object appointment row: %r", row)
                continue
            appointments.append(Appointment.from_record(row))

        return appointments

    def test_connection(self) -> Dict[str, Any]:
        """
        Check that the table is reachable with the configured credentials.

        Raises:
            AppointmentSourceError: If the connection test fails
        """
        url = f"{self.base_url}/rest/v1/{self.table}"

        try:
            response = requests.get(
                url,
                headers=self.headers,
                params={"select": "id", "limit": "1"},
                timeout=10,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise AppointmentSourceError(f"Connection test failed: {e}") from e

        return {"url": url, "status_code": response.status_code}
