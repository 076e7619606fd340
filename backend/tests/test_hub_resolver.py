import pytest

from services.geo import distance_km
from services.hub_resolver import (
    MIN_HUB_SPACING_KM,
    NATIONAL_FALLBACK,
    find_city,
    hub_budget,
    MIN_TRANSIT_SPACING_KM,
    nearest_hubs_between,
    resolve_city,
    transit_cities_between,
)


def test_find_city_ignores_accents_and_case():
    city = find_city("  sao   PAULO ", "sp")
    assert city is not None
    assert city.city == "São Paulo"
    assert city.is_hub


def test_resolve_known_city_uses_table():
    city = resolve_city("Uberlândia", "MG")
    assert (city.lat, city.lng) == (-18.9186, -48.2772)


def test_explicit_coordinates_override_table():
    city = resolve_city("Campinas", "SP", lat=-22.0, lng=-47.0)
    assert (city.lat, city.lng) == (-22.0, -47.0)
    assert city.city == "Campinas"


def test_unknown_city_is_deterministic_and_near_state_hub():
    a = resolve_city("Cidade Inventada", "SP")
    b = resolve_city("cidade inventada", "sp")
    assert (a.lat, a.lng) == (b.lat, b.lng)
    assert a.state == "SP"
    assert abs(a.lat - -23.5505) <= 0.5
    assert abs(a.lng - -46.6333) <= 0.5


def test_unknown_state_falls_back_to_national_anchor():
    city = resolve_city("Lugar Nenhum", "ZZ")
    assert abs(city.lat - NATIONAL_FALLBACK.lat) <= 2.5
    assert abs(city.lng - NATIONAL_FALLBACK.lng) <= 2.5


def test_unknown_city_with_coordinates_keeps_them():
    city = resolve_city("Sítio Novo", "TO", lat=-6.5, lng=-47.6)
    assert (city.city, city.state, city.lat, city.lng) == ("Sítio Novo", "TO", -6.5, -47.6)


@pytest.mark.parametrize("km, expected", [
    (0, 0), (149, 0), (150, 1), (499, 1), (600, 2), (2700, 6), (5000, 6),
])
def test_hub_budget(km, expected):
    assert hub_budget(km) == expected


def test_hub_budget_is_non_decreasing():
    budgets = [hub_budget(km) for km in range(0, 6000, 50)]
    assert budgets == sorted(budgets)


def test_no_hub_for_short_route(sao_paulo, campinas):
    assert nearest_hubs_between(sao_paulo, campinas, 6) == []


def test_long_route_hubs_follow_the_corridor(sao_paulo, manaus):
    hubs = nearest_hubs_between(sao_paulo, manaus, 6)
    assert [h.city for h in hubs] == ["Campinas", "Uberlândia", "Goiânia"]

    from_origin = [distance_km(sao_paulo, h) for h in hubs]
    assert from_origin == sorted(from_origin)
    for i, hub in enumerate(hubs):
        assert hub.is_hub
        for other in hubs[i + 1:]:
            assert distance_km(hub, other) >= MIN_HUB_SPACING_KM


def test_hop_limit_is_respected(sao_paulo, manaus):
    assert len(nearest_hubs_between(sao_paulo, manaus, 1)) == 1
    assert nearest_hubs_between(sao_paulo, manaus, 0) == []


def test_transit_cities_are_spaced_from_hubs(sao_paulo, manaus):
    hubs = nearest_hubs_between(sao_paulo, manaus, 6)
    transit = transit_cities_between(sao_paulo, manaus, 3, taken=hubs)

    assert 1 <= len(transit) <= 3
    for i, city in enumerate(transit):
        assert not city.is_hub
        for other in [*hubs, *transit[i + 1:]]:
            assert distance_km(city, other) >= MIN_TRANSIT_SPACING_KM
    from_origin = [distance_km(sao_paulo, c) for c in transit]
    assert from_origin == sorted(from_origin)


def test_no_transit_city_for_short_route(sao_paulo, campinas):
    assert transit_cities_between(sao_paulo, campinas, 3) == []
    assert transit_cities_between(sao_paulo, resolve_city("Manaus", "AM"), 0) == []
