"""
Operating Calendar Clock
========================

Single source of "now" and "today" for the whole service.

All elapsed/remaining-day arithmetic happens in the operating region's civil
calendar, derived from UTC by a fixed offset. The region does not observe
daylight saving time, so the offset never changes.

Aware datetimes carry their kind: a UTC instant has a zero offset, a local
value carries the operating offset. Conversions refuse the wrong kind instead
of guessing.
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional

from sla_sentinel.core import InvalidTimeRepresentation


class TimeProvider:
    """Clock bound to a fixed-offset operating calendar."""

    def __init__(
        self,
        utc_offset_hours: int = -5,
        zone_name: str = "America/Lima",
        now_func: Optional[Callable[[], datetime]] = None
    ):
        self._offset = timedelta(hours=utc_offset_hours)
        self._tz = timezone(self._offset, zone_name)
        self._now_func = now_func or (lambda: datetime.now(timezone.utc))

    @property
    def tz(self) -> tzinfo:
        """Operating timezone as a fixed-offset tzinfo."""
        return self._tz

    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        value = self._now_func()
        if value.tzinfo is None:
            raise InvalidTimeRepresentation("Clock source returned a naive datetime")
        return value.astimezone(timezone.utc)

    def local_now(self) -> datetime:
        """Current wall-clock time in the operating calendar."""
        return self.to_local(self.now())

    def today(self) -> date:
        """Current civil date in the operating calendar."""
        return self.local_now().date()

    def to_local(self, instant: datetime) -> datetime:
        """
        Convert a UTC instant to operating local time.

        Raises:
            InvalidTimeRepresentation: If the value is naive or not UTC
        """
        if instant.tzinfo is None:
            raise InvalidTimeRepresentation(
                "to_local expects an aware UTC datetime, got a naive value",
                {"value": instant.isoformat()}
            )
        if instant.utcoffset() != timedelta(0):
            raise InvalidTimeRepresentation(
                "to_local expects a UTC datetime",
                {"value": instant.isoformat(), "offset": str(instant.utcoffset())}
            )
        return instant.astimezone(self._tz)

    def to_utc(self, local: datetime) -> datetime:
        """
        Convert operating local time to a UTC instant.

        Naive values are read as local wall time.

        Raises:
            InvalidTimeRepresentation: If the value carries a foreign offset
        """
        if local.tzinfo is None:
            local = local.replace(tzinfo=self._tz)
        elif local.utcoffset() != self._offset:
            raise InvalidTimeRepresentation(
                "to_utc expects operating local time",
                {"value": local.isoformat(), "offset": str(local.utcoffset())}
            )
        return local.astimezone(timezone.utc)
