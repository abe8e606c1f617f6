import calendar

import pytest

from wattmon.timeservices import (
    SECONDS_PER_SEVENTY_YEARS,
    DateTimeRule,
    NtpPacket,
    TimeReference,
    TimeZone,
    TimezoneRule,
    swap32,
    test_rule as rule_reached,
)


def ts(*args):
    return calendar.timegm((*args, 0, 0, 0)[:6] + (0, 0, 0))


US_BEGIN = DateTimeRule(month=3, weekday=1, instance=2, time=120)
US_END = DateTimeRule(month=11, weekday=1, instance=1, time=120)


def test_rule_second_sunday_march():
    assert rule_reached(ts(2021, 3, 14, 2, 0, 0), US_BEGIN) is True
    assert rule_reached(ts(2021, 3, 14, 1, 59, 0), US_BEGIN) is False
    assert rule_reached(ts(2021, 3, 13, 12, 0, 0), US_BEGIN) is False
    assert rule_reached(ts(2021, 3, 15, 0, 0, 0), US_BEGIN) is True


def test_rule_other_months():
    assert rule_reached(ts(2021, 2, 28, 23, 0, 0), US_BEGIN) is False
    assert rule_reached(ts(2021, 4, 1, 0, 0, 0), US_BEGIN) is True


def test_rule_last_sunday():
    rule = DateTimeRule(month=10, weekday=1, instance=-1, time=60)
    assert rule_reached(ts(2021, 10, 31, 1, 0, 0), rule) is True
    assert rule_reached(ts(2021, 10, 30, 23, 0, 0), rule) is False


def us_zone():
    return TimeZone(
        offset_minutes=-300,
        rule=TimezoneRule(begin=US_BEGIN, end=US_END, adj_minutes=60),
    )


def test_to_local_without_rule():
    zone = TimeZone(offset_minutes=120)
    utc = ts(2021, 7, 1, 12, 0, 0)
    assert zone.to_local(utc) - utc == 120 * 60
    assert zone.to_utc(zone.to_local(utc)) == utc


def test_to_local_summer_and_winter():
    zone = us_zone()
    summer = ts(2021, 7, 1, 12, 0, 0)
    winter = ts(2021, 1, 15, 12, 0, 0)
    assert zone.to_local(summer) - summer == (-300 + 60) * 60
    assert zone.to_local(winter) - winter == -300 * 60


@pytest.mark.parametrize(
    "utc",
    [ts(2021, 7, 1, 12, 0, 0), ts(2021, 1, 15, 12, 0, 0), ts(2021, 12, 31, 23, 0, 0)],
)
def test_local_round_trip(utc):
    zone = us_zone()
    assert zone.to_utc(zone.to_local(utc)) == utc


def test_southern_hemisphere_rule():
    zone = TimeZone(
        offset_minutes=600,
        rule=TimezoneRule(
            begin=DateTimeRule(month=10, weekday=1, instance=1, time=120),
            end=DateTimeRule(month=4, weekday=1, instance=1, time=180),
            adj_minutes=60,
        ),
    )
    january = ts(2021, 1, 15, 0, 0, 0)
    july = ts(2021, 7, 15, 0, 0, 0)
    assert zone.to_local(january) - january == (600 + 60) * 60
    assert zone.to_local(july) - july == 600 * 60


def test_swap32():
    assert swap32(0x01020304) == 0x04030201
    assert swap32(swap32(0xDEADBEEF)) == 0xDEADBEEF


def test_packet_wire_format():
    data = NtpPacket().pack()
    assert len(data) == 48
    assert data[:4] == bytes([0xE3, 0x00, 0x06, 0xEC])
    assert data[12:16] == bytes([49, 0x4E, 49, 52])


def test_packet_round_trip():
    packet = NtpPacket(stratum=2, trans_ts_sec=123456, trans_ts_frac=789)
    assert NtpPacket.unpack(packet.pack()) == packet


def test_packet_too_short():
    with pytest.raises(ValueError):
        NtpPacket.unpack(b"\x00" * 47)


def test_utc_and_ntp_relation():
    ref = TimeReference(ntp_ref=SECONDS_PER_SEVENTY_YEARS + 1000, ms_ref=500)
    assert ref.ntp_time(2500) - ref.utc_time(2500) == SECONDS_PER_SEVENTY_YEARS
    assert ref.utc_time(2500) == 1002


def test_millis_at_utc_inverse():
    ref = TimeReference(ntp_ref=SECONDS_PER_SEVENTY_YEARS + 1_600_000_000, ms_ref=777)
    utc = 1_600_000_500
    assert ref.utc_time(ref.millis_at_utc(utc)) == utc


def reply(unix_time, send_millis, stratum=2):
    return NtpPacket(
        stratum=stratum,
        origin_ts_sec=send_millis // 1000,
        origin_ts_frac=send_millis % 1000,
        trans_ts_sec=unix_time + SECONDS_PER_SEVENTY_YEARS,
        trans_ts_frac=0,
    )


def test_sync_needs_confirmation_then_sets_clock():
    unix_time = ts(2021, 6, 1, 0, 0, 0)
    ref = TimeReference()
    packet = reply(unix_time, 1000)
    assert ref.sync(packet, 1000, 1200) is False
    assert ref.sync(packet, 1000, 1200) is True
    assert ref.utc_time(1200) == unix_time
    assert ref.prev_diff == 0


def test_sync_request_matches_reply():
    request = NtpPacket.request(1234)
    echoed = NtpPacket.unpack(request.pack())
    assert (echoed.trans_ts_sec, echoed.trans_ts_frac) == (1, 234)


def test_sync_kiss_of_death():
    with pytest.raises(ValueError, match="Kiss"):
        TimeReference().sync(reply(ts(2021, 6, 1, 0, 0, 0), 1000, stratum=0), 1000, 1200)


def test_sync_origin_mismatch():
    with pytest.raises(ValueError, match="match"):
        TimeReference().sync(reply(ts(2021, 6, 1, 0, 0, 0), 1000), 2000, 2200)


def test_sync_out_of_range():
    with pytest.raises(ValueError, match="range"):
        TimeReference().sync(reply(ts(2010, 6, 1, 0, 0, 0), 1000), 1000, 1200)


def test_sync_timeout():
    with pytest.raises(ValueError, match="timed out"):
        TimeReference().sync(reply(ts(2021, 6, 1, 0, 0, 0), 1000), 1000, 5000)