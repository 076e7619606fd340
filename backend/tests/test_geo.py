from datetime import date, datetime

import pytest

from models.common import Location
from services.geo import add_business_days, distance_km, is_weekend, skip_weekends


def test_distance_sao_paulo_rio(sao_paulo):
    rio = Location(city="Rio de Janeiro", state="RJ", lat=-22.9068, lng=-43.1729)
    assert 340 < distance_km(sao_paulo, rio) < 380


def test_distance_is_symmetric_and_zero_on_same_point(sao_paulo, manaus):
    assert distance_km(sao_paulo, sao_paulo) == 0
    assert distance_km(sao_paulo, manaus) == pytest.approx(distance_km(manaus, sao_paulo))


def test_distance_antipodes_does_not_fail():
    a = Location(city="A", state="XX", lat=0.0, lng=0.0)
    b = Location(city="B", state="XX", lat=0.0, lng=180.0)
    assert distance_km(a, b) == pytest.approx(20015.1, rel=1e-3)


@pytest.mark.parametrize("day, expected", [
    (date(2026, 10, 16), False),   # vendredi
    (date(2026, 10, 17), True),    # samedi
    (date(2026, 10, 18), True),    # dimanche
    (datetime(2026, 10, 19, 9), False),
])
def test_is_weekend(day, expected):
    assert is_weekend(day) is expected


def test_skip_weekends_moves_to_monday():
    assert skip_weekends(date(2026, 10, 17)) == date(2026, 10, 19)
    assert skip_weekends(date(2026, 10, 18)) == date(2026, 10, 19)
    assert skip_weekends(date(2026, 10, 20)) == date(2026, 10, 20)


def test_skip_weekends_keeps_time_of_day():
    assert skip_weekends(datetime(2026, 10, 17, 14, 30)) == datetime(2026, 10, 19, 14, 30)


def test_add_business_days():
    assert add_business_days(date(2026, 10, 16), 1) == date(2026, 10, 19)
    assert add_business_days(date(2026, 10, 19), 5) == date(2026, 10, 26)
    assert add_business_days(date(2026, 10, 19), 0) == date(2026, 10, 19)
