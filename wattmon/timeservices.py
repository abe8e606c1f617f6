"""Time keeping: DST rules, local/UTC conversion and NTP synchronisation."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_SEVENTY_YEARS = 2208988800
NTP_2018 = 1514796044 + SECONDS_PER_SEVENTY_YEARS
NTP_2028 = 1830328844 + SECONDS_PER_SEVENTY_YEARS

_MASK32 = 0xFFFFFFFF
_DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)
_NTP_FORMAT = "!BBBBII4s8I"
_NTP_SIZE = struct.calcsize(_NTP_FORMAT)
_FRACTION_PER_MS = 4294967


def _u32(value: int) -> int:
    return value & _MASK32


@dataclass
class DateTimeRule:
    """A starting date and time in any year.

    ``weekday`` runs Sunday=1 to Saturday=7; ``instance`` counts from the
    start of the month (1, 2, ...) or from the end (-1 = last); ``time`` is
    minutes after midnight.
    """

    month: int = 1
    weekday: int = 1
    instance: int = 1
    time: int = 0


@dataclass
class TimezoneRule:
    """A daylight-saving period and the adjustment applied during it."""

    begin: DateTimeRule = field(default_factory=DateTimeRule)
    end: DateTimeRule = field(default_factory=DateTimeRule)
    use_utc: bool = False
    adj_minutes: int = 0


def test_rule(standard_time: int, rule: DateTimeRule) -> bool:
    """Return True if ``standard_time`` is at or after ``rule`` in its year."""
    now = datetime.fromtimestamp(standard_time, tz=timezone.utc)
    if now.month < rule.month:
        return False
    if now.month > rule.month:
        return True
    days_in_month = _DAYS_IN_MONTH[now.month - 1]
    first_weekday = ((standard_time - (now.day - 1) * 86400) // 86400 + 4) % 7 + 1
    last_weekday = (first_weekday + days_in_month - 2) % 7 + 1
    if rule.instance > 0:
        start_day = (rule.weekday - first_weekday + 7) % 7 + 1 + (rule.instance - 1) * 7
    else:
        start_day = (
            days_in_month
            - (last_weekday - rule.weekday + 7) % 7
            + rule.instance * 7
            + 7
        )
    if now.day < start_day:
        return False
    if now.day > start_day:
        return True
    return now.hour * 60 + now.minute >= rule.time


@dataclass
class TimeZone:
    """A fixed offset from UTC with an optional daylight-saving rule."""

    offset_minutes: int = 0
    rule: Optional[TimezoneRule] = None

    def to_local(self, utc: int) -> int:
        """Convert a UTC unix time to local time."""
        result = _u32(utc + self.offset_minutes * 60)
        rule = self.rule
        if rule is None:
            return result
        adj = rule.adj_minutes * 60

        def basis(local: int) -> int:
            return utc if rule.use_utc else local

        if rule.begin.month <= rule.end.month:
            if (
                test_rule(basis(result), rule.begin)
                and not test_rule(basis(result), rule.end)
                and not test_rule(basis(_u32(result + adj)), rule.end)
            ):
                result = _u32(result + adj)
        else:
            result = _u32(result + adj)
            if test_rule(basis(result), rule.end):
                result = _u32(result - adj)
            if test_rule(basis(result), rule.begin):
                result = _u32(result + adj)
        return result

    def to_utc(self, local: int) -> int:
        """Convert a local time back to UTC unix time."""
        trial = _u32(local - self.offset_minutes * 60)
        return _u32(trial - self.to_local(trial) + local)


def swap32(value: int) -> int:
    """Reverse the byte order of a 32-bit value."""
    return int.from_bytes(_u32(value).to_bytes(4, "little"), "big")


@dataclass
class NtpPacket:
    """An SNTP packet in network byte order."""

    flags: int = 0xE3
    stratum: int = 0
    poll: int = 6
    precision: int = 0xEC
    root_delay: int = 0
    root_dispersion: int = 0
    reference_id: bytes = bytes((49, 0x4E, 49, 52))
    ref_ts_sec: int = 0
    ref_ts_frac: int = 0
    origin_ts_sec: int = 0
    origin_ts_frac: int = 0
    recv_ts_sec: int = 0
    recv_ts_frac: int = 0
    trans_ts_sec: int = 0
    trans_ts_frac: int = 0

    def pack(self) -> bytes:
        """Encode the packet as the 48 bytes sent on the wire."""
        return struct.pack(
            _NTP_FORMAT,
            self.flags,
            self.stratum,
            self.poll,
            self.precision,
            self.root_delay,
            self.root_dispersion,
            self.reference_id,
            self.ref_ts_sec,
            self.ref_ts_frac,
            self.origin_ts_sec,
            self.origin_ts_frac,
            self.recv_ts_sec,
            self.recv_ts_frac,
            self.trans_ts_sec,
            self.trans_ts_frac,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "NtpPacket":
        """Decode a received packet; raise ValueError if it is too short."""
        if len(data) < _NTP_SIZE:
            raise ValueError(f"NTP packet too short: {len(data)} bytes")
        return cls(*struct.unpack(_NTP_FORMAT, bytes(data[:_NTP_SIZE])))

    @classmethod
    def request(cls, send_millis: int) -> "NtpPacket":
        """Build the request packet sent at ``send_millis``."""
        return cls(trans_ts_sec=send_millis // 1000, trans_ts_frac=send_millis % 1000)


@dataclass
class TimeReference:
    """Maps the millisecond clock to NTP and UTC time."""

    ntp_ref: int = 0
    ms_ref: int = 0
    timeout_ms: int = 3000
    prev_diff: int = 0

    def ntp_time(self, millis: int) -> int:
        """NTP seconds at the given millisecond clock value."""
        return _u32(self.ntp_ref + _u32(millis - self.ms_ref) // 1000)

    def utc_time(self, millis: int) -> int:
        """Unix time at the given millisecond clock value."""
        return _u32(self.ntp_time(millis) - SECONDS_PER_SEVENTY_YEARS)

    def millis_at_utc(self, utc: int) -> int:
        """Millisecond clock value corresponding to a unix time."""
        return _u32(self.ms_ref + 1000 * (utc + SECONDS_PER_SEVENTY_YEARS - self.ntp_ref))

    def sync(self, packet: NtpPacket, send_millis: int, recv_millis: int) -> bool:
        """Adjust the reference from a server reply.

        Returns True when the clock was set, False when a change in offset
        was seen and must be confirmed by another reply. Raises ValueError
        when the reply is unusable.
        """
        duration = _u32(recv_millis - send_millis)
        if duration > self.timeout_ms:
            raise ValueError("NTP reply timed out")
        if packet.stratum == 0:
            code = packet.reference_id.decode("latin-1")
            raise ValueError(f"Kiss-o'-Death, code {code}")
        if (
            packet.origin_ts_sec != send_millis // 1000
            or packet.origin_ts_frac != send_millis % 1000
        ):
            raise ValueError("NTP reply does not match request")
        if not NTP_2018 <= packet.trans_ts_sec <= NTP_2028:
            raise ValueError("NTP transmit time out of range")

        trans_ms = packet.trans_ts_frac // _FRACTION_PER_MS
        elapsed = trans_ms + duration // 2
        current_sec = _u32(packet.trans_ts_sec + elapsed // 1000)
        current_frac = elapsed % 1000

        diff = _u32(current_sec - self.ntp_time(recv_millis))
        if diff != self.prev_diff:
            self.prev_diff = diff
            return False
        self.prev_diff = 0
        self.ntp_ref = _u32(current_sec - 1)
        self.ms_ref = _u32(recv_millis - 1000 - current_frac)
        return True