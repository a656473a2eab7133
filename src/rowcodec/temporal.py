"""
Temporal codec.

Packs calendar components into the engine's integer encodings and back:

- DATE: signed day number counted from 1858-11-17
- TIME: unsigned count of 1/10000 second units since midnight
- zone ids: fixed offsets are `minutes + 1439`, named regions count down
  from 65535 (GMT)

The component functions do no calendar validation; out-of-range components
are packed as given. The Python bridges (`from_python`/`to_python`) go
through `datetime`, so its own range checks surface unchanged.
"""
import datetime
import logging
from typing import NamedTuple

from dateutil import tz

from rowcodec.exceptions import LogicError, ValidationError

logger = logging.getLogger(__name__)

TIME_SECONDS_PRECISION = 10000
MICROSECONDS_PER_FRACTION = 1_000_000 // TIME_SECONDS_PRECISION
ONE_DAY = 24 * 60 - 1
GMT_ZONE = 65535
TIME_TZ_BASE_DATE = datetime.date(2020, 1, 1)

_region_names: dict[int, str] = {GMT_ZONE: 'GMT'}


def encode_date(year: int, month: int, day: int) -> int:
    """Pack a calendar date into the engine day number.
    """
    if month > 2:
        month -= 3
    else:
        month += 9
        year -= 1
    c = year // 100
    ya = year - 100 * c
    return (146097 * c) // 4 + (1461 * ya) // 4 + (153 * month + 2) // 5 + day + 1721119 - 2400001


def decode_date(value: int) -> 'Date':
    """Unpack an engine day number into calendar components.
    """
    nday = value + 2400001 - 1721119
    century = (4 * nday - 1) // 146097
    nday = 4 * nday - 1 - 146097 * century
    day = nday // 4
    nday = (4 * day + 3) // 1461
    day = 4 * day + 3 - 1461 * nday
    day = (day + 4) // 4
    month = (5 * day - 3) // 153
    day = 5 * day - 3 - 153 * month
    day = (day + 5) // 5
    year = 100 * century + nday
    if month < 10:
        month += 3
    else:
        month -= 9
        year += 1
    return Date(year, month, day)


def encode_time(hours: int, minutes: int, seconds: int, fractions: int = 0) -> int:
    """Pack a time of day into fraction units since midnight.
    """
    return ((hours * 60 + minutes) * 60 + seconds) * TIME_SECONDS_PRECISION + fractions


def decode_time(value: int) -> 'Time':
    """Unpack fraction units since midnight into time components.
    """
    seconds, fractions = divmod(value, TIME_SECONDS_PRECISION)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return Time(hours, minutes, seconds, fractions)


def register_time_zone(zone_id: int, name: str) -> None:
    """Teach the codec the region name behind an engine zone id.
    """
    if is_offset_zone(zone_id):
        raise ValidationError(f'Zone id {zone_id} is reserved for fixed offsets')
    _region_names[zone_id] = name
    logger.debug(f'Registered time zone {zone_id} as {name}')


def is_offset_zone(zone_id: int) -> bool:
    return 0 <= zone_id <= 2 * ONE_DAY


def resolve_time_zone(zone_id: int, ext_offset: int | None = None) -> datetime.tzinfo | None:
    """Tzinfo for an engine zone id, or None when the id is not known.

    An extended offset wins over the zone id whenever it is given.
    """
    if ext_offset is not None:
        return datetime.timezone(datetime.timedelta(minutes=ext_offset))
    if is_offset_zone(zone_id):
        return datetime.timezone(datetime.timedelta(minutes=zone_id - ONE_DAY))
    name = _region_names.get(zone_id)
    if name is not None:
        return tz.gettz(name)
    return None


def tzinfo_for(zone_id: int, ext_offset: int | None = None) -> datetime.tzinfo:
    """Resolve an engine zone id (and optional extended offset) to a tzinfo.
    """
    zone = resolve_time_zone(zone_id, ext_offset)
    if zone is not None:
        return zone
    raise LogicError(f'Unknown time zone id {zone_id}')


def zone_id_for(tzinfo: datetime.tzinfo | None, at: datetime.datetime) -> int:
    """Engine zone id for a tzinfo, falling back to its offset at `at`.
    """
    if tzinfo is None:
        raise ValidationError('A time zone aware value is required')
    key = getattr(tzinfo, 'key', None)
    for zone_id, name in _region_names.items():
        if key == name or tz.gettz(name) is tzinfo:
            return zone_id
    offset = tzinfo.utcoffset(at)
    if offset is None:
        raise ValidationError(f'Time zone {tzinfo!r} has no offset')
    return int(offset.total_seconds()) // 60 + ONE_DAY


class Date(NamedTuple):
    year: int
    month: int
    day: int

    def encode(self) -> int:
        return encode_date(self.year, self.month, self.day)

    @classmethod
    def from_python(cls, value: datetime.date) -> 'Date':
        return cls(value.year, value.month, value.day)

    def to_python(self) -> datetime.date:
        return datetime.date(self.year, self.month, self.day)


class Time(NamedTuple):
    hours: int
    minutes: int
    seconds: int
    fractions: int = 0

    def encode(self) -> int:
        return encode_time(self.hours, self.minutes, self.seconds, self.fractions)

    @classmethod
    def from_python(cls, value: datetime.time) -> 'Time':
        """Components of the wall time; microseconds are truncated to fractions.
        """
        return cls(value.hour, value.minute, value.second,
                   value.microsecond // MICROSECONDS_PER_FRACTION)

    def to_python(self) -> datetime.time:
        return datetime.time(self.hours, self.minutes, self.seconds,
                             self.fractions * MICROSECONDS_PER_FRACTION)


class Timestamp(NamedTuple):
    date: Date
    time: Time

    def encode(self) -> tuple[int, int]:
        return self.date.encode(), self.time.encode()

    @classmethod
    def from_python(cls, value: datetime.datetime) -> 'Timestamp':
        return cls(Date.from_python(value), Time.from_python(value.time()))

    def to_python(self) -> datetime.datetime:
        return datetime.datetime.combine(self.date.to_python(), self.time.to_python())


class TimeTz(NamedTuple):
    """UTC time of day with the zone it was expressed in.
    """
    utc_time: Time
    time_zone: int
    ext_offset: int | None = None

    def encode(self) -> tuple[int, int]:
        return self.utc_time.encode(), self.time_zone

    @classmethod
    def from_python(cls, value: datetime.time) -> 'TimeTz':
        local = datetime.datetime.combine(TIME_TZ_BASE_DATE, value)
        zone = zone_id_for(value.tzinfo, local)
        utc = local.astimezone(datetime.timezone.utc)
        return cls(Time.from_python(utc.time()), zone)

    def to_python(self) -> datetime.time:
        utc = datetime.datetime.combine(TIME_TZ_BASE_DATE, self.utc_time.to_python(),
                                        tzinfo=datetime.timezone.utc)
        return utc.astimezone(tzinfo_for(self.time_zone, self.ext_offset)).timetz()


class TimestampTz(NamedTuple):
    """UTC timestamp with the zone it was expressed in.
    """
    utc_timestamp: Timestamp
    time_zone: int
    ext_offset: int | None = None

    def encode(self) -> tuple[int, int, int]:
        return (*self.utc_timestamp.encode(), self.time_zone)

    @classmethod
    def from_python(cls, value: datetime.datetime) -> 'TimestampTz':
        zone = zone_id_for(value.tzinfo, value)
        utc = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return cls(Timestamp.from_python(utc), zone)

    def to_python(self) -> datetime.datetime:
        utc = self.utc_timestamp.to_python().replace(tzinfo=datetime.timezone.utc)
        return utc.astimezone(tzinfo_for(self.time_zone, self.ext_offset))


def date_to_isc(value: datetime.date) -> int:
    return Date.from_python(value).encode()


def isc_to_date(value: int) -> datetime.date:
    return decode_date(value).to_python()


def time_to_isc(value: datetime.time) -> int:
    return Time.from_python(value).encode()


def isc_to_time(value: int) -> datetime.time:
    return decode_time(value).to_python()


def datetime_to_isc(value: datetime.datetime) -> tuple[int, int]:
    """Naive datetime to (day number, time units).
    """
    return Timestamp.from_python(value).encode()


def isc_to_datetime(date_value: int, time_value: int) -> datetime.datetime:
    return Timestamp(decode_date(date_value), decode_time(time_value)).to_python()
