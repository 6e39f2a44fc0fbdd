from datetime import datetime

import pytz

from checkin.utils.timezone import epoch_millis, format_local_time, from_utc, utc_now


def test_utc_now_is_naive():
    assert utc_now().tzinfo is None


def test_epoch_millis_treats_naive_as_utc():
    assert epoch_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000
    assert epoch_millis(pytz.UTC.localize(datetime(1970, 1, 1, 0, 0, 2))) == 2000


def test_local_rendering():
    noon_utc = datetime(2024, 3, 1, 5, 0)
    assert from_utc(noon_utc, "Asia/Bangkok").hour == 12
    assert format_local_time(noon_utc, "Asia/Bangkok") == "01/03/2024 12:00"
