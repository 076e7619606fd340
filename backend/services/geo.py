"""
Utilitaires géographiques et calendaires du moteur de simulation.
"""
import math
from datetime import date, datetime, timedelta
from typing import Union

from models.common import Location

EARTH_RADIUS_KM = 6371.0


def distance_km(a: Location, b: Location) -> float:
    """Distance Haversine en km entre deux localisations."""
    dlat = math.radians(b.lat - a.lat)
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(dlng / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(min(1.0, h)))


def is_weekend(day: Union[date, datetime]) -> bool:
    return day.weekday() >= 5   # samedi = 5, dimanche = 6


def skip_weekends(day: Union[date, datetime]) -> Union[date, datetime]:
    """Avance jour par jour jusqu'au prochain jour ouvré (au plus 2 pas)."""
    while is_weekend(day):
        day = day + timedelta(days=1)
    return day


def add_business_days(day: date, count: int) -> date:
    """Ajoute `count` jours ouvrés à un jour ouvré."""
    day = skip_weekends(day)
    for _ in range(count):
        day = skip_weekends(day + timedelta(days=1))
    return day
