import asyncio
import time
from datetime import datetime as py_datetime, timedelta as py_timedelta

import pytest

from zonedtime import (
    UTC,
    Clock,
    CustomZone,
    FixedClock,
    SystemClock,
    ZonedTime,
    now,
)


class CountingClock(Clock):
    def __init__(self):
        self.reads = 0

    def posix(self):
        self.reads += 1
        return 1_000 * self.reads

    def zone(self):
        return UTC


def test_clock_is_abstract():
    with pytest.raises(TypeError):
        Clock()  # type: ignore[abstract]


class TestFixedClock:

    def test_now(self):
        zone = CustomZone(60)
        t = asyncio.run(now(FixedClock(123, zone)))
        assert t.exact_eq(ZonedTime.from_posix(zone, 123))
        assert t.hour == 1

    def test_default_zone(self):
        assert FixedClock(0).zone() is UTC


def test_clock_read_when_awaited():
    clock = CountingClock()
    coro = now(clock)
    assert clock.reads == 0
    t = asyncio.run(coro)
    assert clock.reads == 1
    assert t.to_posix() == 1_000
    # every call samples the clock again
    assert asyncio.run(now(clock)).to_posix() == 2_000


class TestSystemClock:

    def test_posix(self):
        before = time.time_ns() // 1_000_000
        posix = SystemClock().posix()
        after = time.time_ns() // 1_000_000
        assert before <= posix <= after

    def test_zone(self):
        zone = SystemClock().zone()
        assert isinstance(zone, CustomZone)
        assert zone.eras == ()
        expected = py_datetime.now().astimezone().utcoffset()
        assert zone.offset == expected // py_timedelta(minutes=1)


def test_now_defaults_to_system_clock():
    before = time.time_ns() // 1_000_000
    t = asyncio.run(now())
    after = time.time_ns() // 1_000_000
    assert before <= t.to_posix() <= after
    assert isinstance(t.to_zone(), CustomZone)
