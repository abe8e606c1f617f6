"""General helpers: string compare, hex/base64, JSON summaries, dates, versions."""

from __future__ import annotations

import base64
import hashlib
from itertools import groupby, zip_longest
from typing import IO, Optional, Sequence, Tuple, Union

from wattmon.timeservices import TimeZone

_HEX_DIGITS = "0123456789abcdef"
_MONTH_TO_DATE = (0, 31, 59, 90, 120, 151, 181, 212, 243, 273, 304, 334, 365)
_MONTH_TO_LEAP_DATE = (0, 31, 60, 91, 121, 152, 182, 213, 244, 274, 305, 335, 366)
_FORMAT_CHARS = "YMDhms"
DEFAULT_DATE_FORMAT = "MM/DD/YY hh:mm:ss"


def strcmp_ci(first: str, second: str) -> int:
    """Case-insensitive compare returning -1, 0 or +1 like ``strcmp``."""
    for a, b in zip_longest(first, second, fillvalue="\0"):
        if a != b:
            ua, ub = a.upper(), b.upper()
            if ua > ub:
                return 1
            if ua < ub:
                return -1
    return 0


def hash_name(name: str) -> str:
    """Hash ``name`` to an eight character base64 string."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()[:6]
    return base64encode(digest)


def format_hex(data: int) -> str:
    """Format a 32-bit value as eight hex digits."""
    value = data & 0xFFFFFFFF
    return "".join(_HEX_DIGITS[(value >> shift) & 0xF] for shift in range(28, -4, -4))


def bin2hex(data: bytes) -> str:
    """Convert bytes to a string of lowercase hex digits."""
    return "".join(_HEX_DIGITS[b >> 4] + _HEX_DIGITS[b & 0x0F] for b in data)


def hex2bin(text: str) -> bytes:
    """Convert a string of lowercase hex digits back to bytes."""
    if len(text) % 2:
        raise ValueError("hex string has odd length")
    try:
        return bytes(
            _HEX_DIGITS.index(hi) * 16 + _HEX_DIGITS.index(lo)
            for hi, lo in zip(text[0::2], text[1::2])
        )
    except ValueError:
        raise ValueError(f"invalid hex string {text!r}") from None


def base64encode(data: bytes) -> str:
    """Encode bytes as padded base64 text; empty input gives an empty string."""
    if not data:
        return ""
    return base64.b64encode(bytes(data)).decode("ascii")


def _as_text(data: Union[str, bytes]) -> Tuple[str, bool]:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("latin-1"), True
    return data, False


def _restore(text: str, binary: bool) -> str:
    return text.encode("latin-1").decode("utf-8") if binary else text


def json_summary(stream: IO, depth: int) -> str:
    """Summarise the JSON document in ``stream`` down to ``depth``.

    Objects or arrays nested at ``depth`` are replaced by ``[position,length]``
    where position is the stream offset of the opening bracket and length is
    the size of the value with insignificant whitespace removed. Offsets are
    byte offsets for binary streams.
    """
    start = stream.tell()
    text, binary = _as_text(stream.read())
    out = []
    delims = []
    in_string = False
    escape = False
    var_beg = 0
    var_len = 0
    for offset, ch in enumerate(text):
        var_len += 1
        if escape:
            escape = False
        elif in_string:
            if ch == '"':
                in_string = False
            elif ch == "\\":
                escape = True
        elif ch.isspace():
            var_len -= 1
            continue
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            delims.append("}" if ch == "{" else "]")
            if len(delims) - 1 == depth:
                var_beg = start + offset
                var_len = 0
        elif delims and ch == delims[-1]:
            delims.pop()
            if len(delims) - 1 == depth - 1:
                out.append(f"[{var_beg},{var_len + 1}")
                ch = "]"
        level = len(delims) - 1
        if level < depth:
            out.append(ch)
        if level < 0:
            break
    return _restore("".join(out), binary)


def json_detail(stream: IO, locator: Sequence[int]) -> str:
    """Read the condensed JSON value described by a summary locator."""
    position, length = int(locator[0]), int(locator[1])
    stream.seek(position)
    out = []
    in_string = False
    escape = False
    binary = False
    while len(out) < length:
        chunk = stream.read(1)
        if not chunk:
            raise ValueError("stream ended before the JSON value was complete")
        ch, is_binary = _as_text(chunk)
        binary = binary or is_binary
        if not in_string and ch.isspace():
            continue
        if escape:
            escape = False
        elif in_string:
            if ch == '"':
                in_string = False
            elif ch == "\\":
                escape = True
        elif ch == '"':
            in_string = True
        out.append(ch)
    return _restore("".join(out), binary)


def unixtime(
    year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0
) -> int:
    """Convert a calendar date and time to unix time."""
    if (
        year < 1970
        or not 1 <= month <= 12
        or not 1 <= day <= 31
        or not 0 <= hour <= 23
        or not 0 <= minute <= 59
        or not 0 <= second <= 59
    ):
        raise ValueError(
            f"invalid date/time {year}-{month}-{day} {hour}:{minute}:{second}"
        )
    days = (year - 1970) * 365 + (year - 1969) // 4
    days += _MONTH_TO_DATE[month - 1] + (day - 1)
    if year % 4 == 0 and month > 2:
        days += 1
    return days * 86400 + hour * 3600 + minute * 60 + second


def _calendar(unixtime_: int) -> Tuple[int, int, int, int, int, int]:
    daytime = unixtime_ % 86400
    hour, minute, second = daytime // 3600, (daytime % 3600) // 60, daytime % 60
    days = unixtime_ // 86400 + 365
    year = 4 * (days // 1461) + 1969
    days %= 1461
    if days < 1095:
        year += days // 365
        days %= 365
        table = _MONTH_TO_DATE
    else:
        year += 3
        days -= 1095
        table = _MONTH_TO_LEAP_DATE
    month = next(m for m in range(1, 13) if days < table[m])
    return year, month, days - table[month - 1] + 1, hour, minute, second


def datef(unixtime: int, fmt: str = DEFAULT_DATE_FORMAT) -> str:
    """Format a unix time using runs of Y, M, D, h, m and s.

    One letter gives the value modulo 100, two give it zero padded to two
    digits, and longer runs give the full value padded to the run length.
    """
    values = _calendar(unixtime & 0xFFFFFFFF)
    out = []
    for ch, run in groupby(fmt):
        count = len(list(run))
        index = _FORMAT_CHARS.find(ch)
        if index < 0:
            out.append(ch * count)
        elif count == 1:
            out.append(str(values[index] % 100))
        elif count == 2:
            out.append(f"{values[index] % 100:02d}")
        else:
            out.append(f"{values[index]:0{count}d}")
    return "".join(out)


def local_date_string(unixtime: int, zone: TimeZone) -> str:
    """Format a UTC unix time as a local date/time string."""
    return datef(zone.to_local(unixtime), DEFAULT_DATE_FORMAT)


def _scan_int(text: str, pos: int, width: Optional[int] = None) -> Tuple[Optional[int], int]:
    """Read a signed decimal integer like ``%d``; return (None, pos) if absent."""
    while pos < len(text) and text[pos].isspace():
        pos += 1
    limit = len(text) if width is None else min(len(text), pos + width)
    end = pos
    if end < limit and text[end] in "+-":
        end += 1
    digits_start = end
    while end < limit and text[end].isdigit():
        end += 1
    if end == digits_start:
        return None, pos
    return int(text[pos:end]), end


def yyyymmdd_to_unixtime(text: str) -> int:
    """Convert a ``YYYYMMDD`` string to unix time."""
    year, pos = _scan_int(text, 0, 4)
    month, pos = (None, pos) if year is None else _scan_int(text, pos, 2)
    day, pos = (None, pos) if month is None else _scan_int(text, pos, 2)
    if day is None:
        raise ValueError(f"invalid YYYYMMDD date {text!r}")
    return unixtime(year, month, day)


def hhmmss_to_daytime(text: str) -> int:
    """Convert ``hh[:mm[:ss]]`` to seconds after midnight."""
    fields = []
    pos = 0
    for index in range(3):
        if index:
            if pos >= len(text) or text[pos] != ":":
                break
            pos += 1
        value, pos = _scan_int(text, pos, 2)
        if value is None:
            break
        fields.append(value)
    if not fields:
        raise ValueError(f"invalid time {text!r}")
    hour, minute, second = (fields + [0, 0])[:3]
    return hour * 3600 + minute * 60 + second


def hash_file(stream: IO[bytes]) -> bytes:
    """SHA-256 of the whole stream, leaving its position unchanged."""
    position = stream.tell()
    stream.seek(0)
    sha = hashlib.sha256()
    for chunk in iter(lambda: stream.read(256), b""):
        sha.update(chunk)
    stream.seek(position)
    return sha.digest()


def parse_semantic_version(text: Optional[str]) -> int:
    """Pack ``major.minor.patch`` (or ``_`` separated) into one integer.

    Returns -1 when no version is given.
    """
    if text is None:
        return -1
    major, pos = _scan_int(text, 0)
    result = (major or 0) << 16
    if pos < len(text) and text[pos] in "._":
        minor, pos = _scan_int(text, pos + 1)
        result += (minor or 0) << 8
        if pos < len(text) and text[pos] in "._":
            patch, pos = _scan_int(text, pos + 1)
            result += patch or 0
    return result


def display_semantic_version(version: int) -> str:
    """Render a packed version as ``major.minor.patch``, or ``invalid``."""
    if version < 0:
        return "invalid"
    return f"{(version >> 16) & 0xFF}.{(version >> 8) & 0xFF}.{version & 0xFF}"