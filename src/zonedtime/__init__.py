# The MIT License (MIT)
#
# Copyright (c) Arie Bovenberg
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

# Maintainer's notes:
#
# - Why is everything in one file?
#   - Flat is better than nested
#   - It prevents circular imports since zones and ZonedTime 'know' about
#     each other
#   - It's easier to vendor (i.e. copy-paste) this library if needed
# - All calendar math is done on plain integers (milliseconds since the
#   UNIX epoch), not on datetime objects. This keeps it exact and lets it
#   work outside the years 1-9999 that datetime supports.
from __future__ import annotations

__version__ = "0.1.0"

import enum
import time
from abc import ABC, abstractmethod
from datetime import (
    datetime as _datetime,
    timedelta as _timedelta,
    timezone as _timezone,
    tzinfo as _tzinfo,
)
from operator import attrgetter
from typing import TYPE_CHECKING, Callable, Iterable, NamedTuple
from zoneinfo import ZoneInfo

__all__ = [
    "ZonedTime",
    "Zone",
    "CustomZone",
    "Era",
    "TimeZone",
    "UTC",
    "Month",
    "Weekday",
    "Clock",
    "SystemClock",
    "FixedClock",
    "now",
    "is_leap_year",
    "days_in_year",
    "days_in_month",
    "InvalidOffset",
]


class Month(enum.IntEnum):
    """The months of the year; ``.value`` is the month number (1-12)"""

    JANUARY = 1
    FEBRUARY = 2
    MARCH = 3
    APRIL = 4
    MAY = 5
    JUNE = 6
    JULY = 7
    AUGUST = 8
    SEPTEMBER = 9
    OCTOBER = 10
    NOVEMBER = 11
    DECEMBER = 12


class Weekday(enum.Enum):
    """The days of the week; ``.value`` corresponds with ISO numbering."""

    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7


MONDAY = Weekday.MONDAY
TUESDAY = Weekday.TUESDAY
WEDNESDAY = Weekday.WEDNESDAY
THURSDAY = Weekday.THURSDAY
FRIDAY = Weekday.FRIDAY
SATURDAY = Weekday.SATURDAY
SUNDAY = Weekday.SUNDAY


# Helpers that pre-compute/lookup as much as possible
_object_new = object.__new__
_era_start = attrgetter("start")
_era_offset = attrgetter("offset")
_MS_PER_SECOND = 1_000
_MS_PER_MINUTE = 60_000
_MS_PER_HOUR = 3_600_000
_MS_PER_DAY = 86_400_000
_MAX_OFFSET_MINUTES = 24 * 60
# The offset of 0001-01-01T00:00:00Z from the UNIX epoch
_EPOCH_OFFSET = -62_135_596_800_000
_EPOCH = _datetime(1970, 1, 1, tzinfo=_timezone.utc)
_ONE_MS = _timedelta(milliseconds=1)
# A day of margin on each side, so any offset can be applied
_PY_MIN_POSIX = (
    _datetime.min.replace(tzinfo=_timezone.utc) - _EPOCH
) // _ONE_MS + _MS_PER_DAY
_PY_MAX_POSIX = (
    _datetime.max.replace(tzinfo=_timezone.utc) - _EPOCH
) // _ONE_MS - _MS_PER_DAY
_DAYS_IN_MONTH = {
    Month.JANUARY: 31,
    Month.MARCH: 31,
    Month.APRIL: 30,
    Month.MAY: 31,
    Month.JUNE: 30,
    Month.JULY: 31,
    Month.AUGUST: 31,
    Month.SEPTEMBER: 30,
    Month.OCTOBER: 31,
    Month.NOVEMBER: 30,
    Month.DECEMBER: 31,
}


def is_leap_year(year: int, /) -> bool:
    """Whether the year is a leap year in the proleptic Gregorian calendar.

    Zero and negative years are supported (astronomical year numbering,
    so year 0 is 1 BC).

    Example
    -------

    >>> is_leap_year(2000)
    True
    >>> is_leap_year(1900)
    False
    >>> is_leap_year(0)
    True

    """
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_year(year: int, /) -> int:
    """The number of days in the year: 365 or 366"""
    return 366 if is_leap_year(year) else 365


def days_in_month(year: int, month: Month, /) -> int:
    """The number of days in the month of the given year

    Example
    -------

    >>> days_in_month(2024, Month.FEBRUARY)
    29
    >>> days_in_month(2023, Month.FEBRUARY)
    28

    """
    return _days_in_month(is_leap_year(year), Month(month))


def _days_in_month(is_leap: bool, month: Month) -> int:
    if month == Month.FEBRUARY:
        return 29 if is_leap else 28
    return _DAYS_IN_MONTH[month]


def _ordinal_day(is_leap: bool, month: Month, day: int) -> int | None:
    # The 1-based day of the year, or None if the day doesn't exist
    if not 1 <= day <= _days_in_month(is_leap, month):
        return None
    if month <= Month.FEBRUARY:
        offset = 0
    else:
        offset = -1 if is_leap else -2
    ordinal = (367 * month - 362) // 12 + offset + day
    if not 1 <= ordinal <= (366 if is_leap else 365):
        return None
    return ordinal


def _days_from_origin(year: int, ordinal: int) -> int:
    # Days since 0001-01-01, counting all leap days before the year
    y = year - 1
    return ordinal + 365 * y + y // 4 - y // 100 + y // 400 - 1


def _civil_from_days(days: int) -> tuple[int, Month, int]:
    # Inverse of the above, from days since the UNIX epoch.
    # Works on 400-year eras of 146097 days, starting on March 1st so the
    # leap day falls at the end of each year.
    z = days + 719_468
    era = z // 146_097
    doe = z - era * 146_097
    yoe = (doe - doe // 1_460 + doe // 36_524 - doe // 146_096) // 365
    doy = doe - (365 * yoe + yoe // 4 - yoe // 100)
    mp = (5 * doy + 2) // 153
    day = doy - (153 * mp + 2) // 5 + 1
    month = mp + 3 if mp < 10 else mp - 9
    return yoe + era * 400 + (month <= 2), Month(month), day


class InvalidOffset(ValueError):
    """A UTC offset is not strictly within 24 hours"""


class Zone(ABC):
    """Abstract base class for time zones.

    A zone is a capability: given an instant in milliseconds since the UNIX
    epoch, it reports the local calendar and clock fields an observer in
    the zone would see. Subclasses only need to implement
    :meth:`offset_millis`.
    """

    __slots__ = ()

    @abstractmethod
    def offset_millis(self, posix: int, /) -> int:
        """The UTC offset in effect at the given instant, in milliseconds"""

    def year(self, posix: int, /) -> int:
        return self._date(posix)[0]

    def month(self, posix: int, /) -> Month:
        return self._date(posix)[1]

    def day(self, posix: int, /) -> int:
        return self._date(posix)[2]

    def weekday(self, posix: int, /) -> Weekday:
        # The UNIX epoch was on a Thursday
        return Weekday((self._local(posix) // _MS_PER_DAY + 3) % 7 + 1)

    def hour(self, posix: int, /) -> int:
        return self._local(posix) % _MS_PER_DAY // _MS_PER_HOUR

    def minute(self, posix: int, /) -> int:
        return self._local(posix) % _MS_PER_HOUR // _MS_PER_MINUTE

    def second(self, posix: int, /) -> int:
        return self._local(posix) % _MS_PER_MINUTE // _MS_PER_SECOND

    def millisecond(self, posix: int, /) -> int:
        return self._local(posix) % _MS_PER_SECOND

    def py_tzinfo(self, posix: int, /) -> _tzinfo:
        """A :class:`~datetime.tzinfo` to represent this zone at the instant
        in the standard library. By default a fixed-offset timezone."""
        return _timezone(_timedelta(milliseconds=self.offset_millis(posix)))

    def _local(self, posix: int) -> int:
        return posix + self.offset_millis(posix)

    def _date(self, posix: int) -> tuple[int, Month, int]:
        return _civil_from_days(self._local(posix) // _MS_PER_DAY)


class Era(NamedTuple):
    """A period during which a :class:`CustomZone` has a given offset.

    Both ``start`` (since the UNIX epoch) and ``offset`` are in minutes.
    """

    start: int
    offset: int


class CustomZone(Zone):
    """A zone with a default UTC offset and an optional history of eras.

    Offsets are in minutes. The era in effect is the latest one whose
    ``start`` lies strictly before the instant's minute; if there is none,
    the default offset applies.

    Example
    -------

    >>> cet = CustomZone(60)
    >>> cet.hour(0)
    1
    >>> # +01:00 until the first minute after the epoch, +02:00 afterwards
    >>> z = CustomZone(60, [Era(start=0, offset=120)])
    >>> z.hour(0), z.hour(60_000)
    (1, 2)

    """

    __slots__ = ("_offset", "_eras")

    def __init__(self, offset: int, eras: Iterable[Era] = (), /) -> None:
        eras = tuple(
            sorted((Era(*e) for e in eras), key=_era_start, reverse=True)
        )
        for minutes in (offset, *map(_era_offset, eras)):
            if not -_MAX_OFFSET_MINUTES < minutes < _MAX_OFFSET_MINUTES:
                raise InvalidOffset(f"offset out of range: {minutes} minutes")
        self._offset = offset
        self._eras = eras

    @property
    def offset(self) -> int:
        """The default offset in minutes"""
        return self._offset

    @property
    def eras(self) -> tuple[Era, ...]:
        """The eras, latest first"""
        return self._eras

    def offset_millis(self, posix: int, /) -> int:
        minute = posix // _MS_PER_MINUTE
        for era in self._eras:
            if era.start < minute:
                return era.offset * _MS_PER_MINUTE
        return self._offset * _MS_PER_MINUTE

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CustomZone):
            return NotImplemented
        return self._offset == other._offset and self._eras == other._eras

    def __hash__(self) -> int:
        return hash((self._offset, self._eras))

    def __repr__(self) -> str:
        if self._eras:
            return f"CustomZone({self._offset}, {list(self._eras)})"
        return f"CustomZone({self._offset})"

    def __reduce__(self) -> tuple[object, ...]:
        return (CustomZone, (self._offset, self._eras))


UTC = CustomZone(0)
"""The UTC zone: no offset, no eras"""


class TimeZone(Zone):
    """A zone from the IANA time zone database, e.g. ``"Europe/Amsterdam"``.

    Lookups are delegated to :class:`~zoneinfo.ZoneInfo`, so daylight saving
    time and historical changes are accounted for.

    Example
    -------

    >>> ams = TimeZone("Europe/Amsterdam")
    >>> ams.hour(1_688_205_600_000)  # 2023-07-01T10:00:00Z
    12
    >>>
    >>> # ZoneInfoNotFoundError: no such timezone
    >>> TimeZone("invalid")

    Note
    ----
    Instants outside the range of :class:`~datetime.datetime` use the
    offset in effect at the nearest instant that is within range.
    """

    __slots__ = ("_zoneinfo",)

    def __init__(self, key: str, /) -> None:
        self._zoneinfo = ZoneInfo(key)

    @property
    def key(self) -> str:
        """The IANA timezone ID"""
        return self._zoneinfo.key

    def offset_millis(self, posix: int, /) -> int:
        clamped = min(max(posix, _PY_MIN_POSIX), _PY_MAX_POSIX)
        offset = _to_py_utc(clamped).astimezone(self._zoneinfo).utcoffset()
        # ZoneInfo always returns an offset for aware datetimes
        return offset // _ONE_MS  # type: ignore[operator]

    def py_tzinfo(self, posix: int, /) -> _tzinfo:
        return self._zoneinfo

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeZone):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"TimeZone({self.key!r})"

    def __reduce__(self) -> tuple[object, ...]:
        return (TimeZone, (self.key,))


class ZonedTime:
    """An instant in time, paired with the zone it is observed from.

    The instant is stored as milliseconds since the UNIX epoch. All
    "modifying" methods return a new instance; the zone is only ever
    replaced by :meth:`overwrite_zone`.

    Example
    -------

    >>> t = ZonedTime.from_posix(UTC, 309_252_123)
    >>> t.year, t.month, t.day
    (1970, <Month.JANUARY: 1>, 4)
    >>> t.hour, t.minute, t.second, t.millisecond
    (13, 54, 12, 123)
    >>> t.set_to_midnight().to_posix()
    259200000

    Note
    ----
    Arithmetic works on exact milliseconds. Adding a day always adds
    86,400,000 milliseconds, regardless of daylight saving time in the zone.
    Python integers don't overflow, but conversion to
    :class:`~datetime.datetime` is limited to the years 1-9999.
    """

    __slots__ = ("_zone", "_posix", "__weakref__")

    def __init__(self, zone: Zone, posix: int, /) -> None:
        self._zone = zone
        self._posix = posix

    @classmethod
    def from_posix(cls, zone: Zone, posix: int, /) -> ZonedTime:
        """Pair an instant (milliseconds since the UNIX epoch) with a zone.
        Any combination is valid."""
        self = _object_new(cls)
        self._zone = zone
        self._posix = posix
        return self

    @classmethod
    def from_gregorian_utc(
        cls, year: int, month: Month, day: int
    ) -> ZonedTime | None:
        """Midnight UTC on the given date of the proleptic Gregorian
        calendar, or ``None`` if the day doesn't exist in that month.

        There are no limits on the year; zero and negative years
        are allowed.

        Example
        -------

        >>> ZonedTime.from_gregorian_utc(2000, Month.FEBRUARY, 29)
        ZonedTime(posix=951782400000, zone=CustomZone(0))
        >>> ZonedTime.from_gregorian_utc(1999, Month.FEBRUARY, 29) is None
        True

        """
        month = Month(month)
        if (ordinal := _ordinal_day(is_leap_year(year), month, day)) is None:
            return None
        return cls.from_posix(
            UTC,
            _days_from_origin(year, ordinal) * _MS_PER_DAY + _EPOCH_OFFSET,
        )

    @classmethod
    def from_py_datetime(cls, d: _datetime, /) -> ZonedTime:
        """Create from an aware :class:`~datetime.datetime`.
        Inverse of :meth:`py_datetime`.

        The tzinfo must be a :class:`~zoneinfo.ZoneInfo` with a key,
        or a fixed :class:`~datetime.timezone` with a whole number of minutes.
        Microseconds are rounded down to whole milliseconds.
        """
        zone: Zone
        if isinstance(d.tzinfo, ZoneInfo):
            if d.tzinfo.key is None:
                raise ValueError(
                    "Can only create ZonedTime from ZoneInfo with a key, "
                    f"got datetime with tzinfo={d.tzinfo!r}"
                )
            zone = TimeZone(d.tzinfo.key)
        elif isinstance(d.tzinfo, _timezone):
            minutes, remainder = divmod(
                d.tzinfo.utcoffset(None), _timedelta(minutes=1)
            )
            if remainder:
                raise ValueError(
                    "Can only create ZonedTime from whole-minute offsets, "
                    f"got datetime with tzinfo={d.tzinfo!r}"
                )
            zone = CustomZone(minutes)
        else:
            raise ValueError(
                "Can only create ZonedTime from ZoneInfo or timezone, "
                f"got datetime with tzinfo={d.tzinfo!r}"
            )
        return cls.from_posix(zone, (d - _EPOCH) // _ONE_MS)

    def to_posix(self) -> int:
        """The instant, in milliseconds since the UNIX epoch"""
        return self._posix

    def to_zone(self) -> Zone:
        return self._zone

    def overwrite_zone(self, zone: Zone, /) -> ZonedTime:
        """Observe the same instant from a different zone.

        Example
        -------

        >>> t = ZonedTime.from_posix(UTC, 0)
        >>> t.overwrite_zone(CustomZone(60)).hour
        1

        """
        return self.from_posix(zone, self._posix)

    def map_posix(self, f: Callable[[int], int], /) -> ZonedTime:
        """Transform the instant, keeping the zone"""
        return self.from_posix(self._zone, f(self._posix))

    def add_days(self, n: int, /) -> ZonedTime:
        """Add a number of days, each exactly 24 hours. May be negative."""
        return self.add_millis(n * _MS_PER_DAY)

    def add_hours(self, n: int, /) -> ZonedTime:
        return self.add_millis(n * _MS_PER_HOUR)

    def add_minutes(self, n: int, /) -> ZonedTime:
        return self.add_millis(n * _MS_PER_MINUTE)

    def add_seconds(self, n: int, /) -> ZonedTime:
        return self.add_millis(n * _MS_PER_SECOND)

    def add_millis(self, n: int, /) -> ZonedTime:
        return self.map_posix(lambda posix: posix + n)

    if TYPE_CHECKING:

        @property
        def year(self) -> int: ...

        @property
        def month(self) -> Month: ...

        @property
        def day(self) -> int: ...

        @property
        def weekday(self) -> Weekday: ...

        @property
        def hour(self) -> int: ...

        @property
        def minute(self) -> int: ...

        @property
        def second(self) -> int: ...

        @property
        def millisecond(self) -> int: ...

    else:
        # Always recomputed by the zone, never cached
        year = property(lambda self: self._zone.year(self._posix))
        month = property(lambda self: self._zone.month(self._posix))
        day = property(lambda self: self._zone.day(self._posix))
        weekday = property(lambda self: self._zone.weekday(self._posix))
        hour = property(lambda self: self._zone.hour(self._posix))
        minute = property(lambda self: self._zone.minute(self._posix))
        second = property(lambda self: self._zone.second(self._posix))
        millisecond = property(
            lambda self: self._zone.millisecond(self._posix)
        )

    def reset_hour(self) -> ZonedTime:
        """Subtract the local hour, e.g. 13:54 becomes 00:54"""
        return self.add_hours(-self.hour)

    def reset_minute(self) -> ZonedTime:
        return self.add_minutes(-self.minute)

    def reset_second(self) -> ZonedTime:
        return self.add_seconds(-self.second)

    def reset_millis(self) -> ZonedTime:
        return self.add_millis(-self.millisecond)

    def set_to_midnight(self) -> ZonedTime:
        """Subtract the local time of day, in one step.

        Example
        -------

        >>> t = ZonedTime.from_posix(UTC, 309_252_123)
        >>> m = t.set_to_midnight()
        >>> m.day, m.hour, m.minute, m.second, m.millisecond
        (4, 0, 0, 0, 0)

        Warning
        -------
        The fields are read once, at the original instant.
        If the zone's offset changes between midnight and that instant
        (e.g. a DST transition early in the morning),
        the result is not exactly local midnight.
        This matches ``reset_millis(reset_second(...))`` and friends
        in all zones with a constant offset over that period.
        """
        zone, posix = self._zone, self._posix
        return self.add_millis(
            -(
                zone.hour(posix) * _MS_PER_HOUR
                + zone.minute(posix) * _MS_PER_MINUTE
                + zone.second(posix) * _MS_PER_SECOND
                + zone.millisecond(posix)
            )
        )

    def py_datetime(self) -> _datetime:
        """Convert to an aware :class:`~datetime.datetime` in the zone's
        tzinfo. Raises :class:`OverflowError` outside the years 1-9999.
        """
        return (_EPOCH + _timedelta(milliseconds=self._posix)).astimezone(
            self._zone.py_tzinfo(self._posix)
        )

    # Hiding __eq__ from mypy ensures that --strict-equality works.
    if not TYPE_CHECKING:  # pragma: no branch

        def __eq__(self, other: object) -> bool:
            """Compare the instants, regardless of zone.
            Use :meth:`exact_eq` to also compare the zones.

            Example
            -------

            >>> a = ZonedTime.from_posix(UTC, 0)
            >>> a == ZonedTime.from_posix(CustomZone(60), 0)
            True

            """
            if not isinstance(other, ZonedTime):
                return NotImplemented
            return self._posix == other._posix

    def __hash__(self) -> int:
        return hash(self._posix)

    def exact_eq(self, other: ZonedTime, /) -> bool:
        """Whether both the instant and the zone are equal"""
        return self._posix == other._posix and self._zone == other._zone

    def __lt__(self, other: ZonedTime) -> bool:
        if not isinstance(other, ZonedTime):
            return NotImplemented
        return self._posix < other._posix

    def __le__(self, other: ZonedTime) -> bool:
        if not isinstance(other, ZonedTime):
            return NotImplemented
        return self._posix <= other._posix

    def __gt__(self, other: ZonedTime) -> bool:
        if not isinstance(other, ZonedTime):
            return NotImplemented
        return self._posix > other._posix

    def __ge__(self, other: ZonedTime) -> bool:
        if not isinstance(other, ZonedTime):
            return NotImplemented
        return self._posix >= other._posix

    def __repr__(self) -> str:
        return f"ZonedTime(posix={self._posix}, zone={self._zone!r})"

    # We don't need to copy, because it's immutable
    def __copy__(self) -> ZonedTime:
        return self

    def __deepcopy__(self, _: object) -> ZonedTime:
        return self

    def __reduce__(self) -> tuple[object, ...]:
        return (_unpkl_zoned, (self._posix, self._zone))


# A separate unpickling function allows us to make backwards-compatible
# changes to the pickling format in the future
def _unpkl_zoned(posix: int, zone: Zone) -> ZonedTime:
    return ZonedTime.from_posix(zone, posix)


class Clock(ABC):
    """The source of the current instant and the observer's zone"""

    __slots__ = ()

    @abstractmethod
    def posix(self) -> int:
        """The current time, in milliseconds since the UNIX epoch"""

    @abstractmethod
    def zone(self) -> Zone:
        """The zone of the observer"""


class SystemClock(Clock):
    """Reads the system clock and the system timezone.

    Changes to the system timezone
    ------------------------------

    The zone is a :class:`CustomZone` with the fixed offset of the system
    timezone at the moment :meth:`zone` is called.
    Automatically reflecting later changes to the system timezone
    would mean the zone could change at any time, depending on some
    global mutable state. Use :class:`TimeZone` if you need DST
    transitions to be taken into account.
    """

    __slots__ = ()

    def posix(self) -> int:
        return time.time_ns() // 1_000_000

    def zone(self) -> Zone:
        offset = _datetime.now().astimezone().utcoffset()
        # astimezone() always returns an aware datetime
        minutes = offset // _timedelta(minutes=1)  # type: ignore[operator]
        return CustomZone(minutes)


class FixedClock(Clock):
    """A clock that is stopped at a given instant. Useful for testing.

    Example
    -------

    >>> import asyncio
    >>> asyncio.run(now(FixedClock(0, CustomZone(60)))).hour
    1

    """

    __slots__ = ("_posix", "_zone")

    def __init__(self, posix: int, zone: Zone = UTC) -> None:
        self._posix = posix
        self._zone = zone

    def posix(self) -> int:
        return self._posix

    def zone(self) -> Zone:
        return self._zone


async def now(clock: Clock | None = None) -> ZonedTime:
    """The current time, observed from the clock's zone.

    The clock is read when the coroutine is awaited, not when it is created.

    Example
    -------

    >>> t = await now()
    >>> # or from synchronous code
    >>> t = asyncio.run(now())

    """
    if clock is None:
        clock = SystemClock()
    return ZonedTime.from_posix(clock.zone(), clock.posix())


def _to_py_utc(posix: int) -> _datetime:
    return _EPOCH + _timedelta(milliseconds=posix)
