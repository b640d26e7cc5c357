import pandas as pd
import pytest

from aedmap.distance import haversine_km, rank_by_distance
from aedmap.models import ReferenceLocation
from aedmap.normalize import normalize_features

from conftest import feature

KM_PER_DEG_LAT = 6371.0 * 3.141592653589793 / 180


def test_haversine_between_city_halls():
    # Saitama city hall (35.8617, 139.6455) to Kawagoe city hall (35.9251, 139.4858), about 16 km
    dist = haversine_km(35.8617, 139.6455, 35.9251, 139.4858)
    assert 15.5 <= dist <= 16.5
    assert haversine_km(35.0, 139.0, 35.0, 139.0) == 0


def test_rank_orders_near_before_far(settings):
    far = feature("far", "r", 139.0, 35.0 + 5.0 / KM_PER_DEG_LAT)
    near = feature("near", "r", 139.0, 35.0 + 1.0 / KM_PER_DEG_LAT)
    sites = normalize_features([far, near], settings).sites
    ranked = rank_by_distance(sites, ReferenceLocation(35.0, 139.0))
    assert list(ranked["name"]) == ["near", "far"]
    assert list(ranked["distance_km"]) == pytest.approx([1.0, 5.0], rel=1e-6)


def test_rank_is_stable_for_equal_distances(settings):
    features = [feature(n, "r", 139.0, 35.01) for n in ("first", "second", "third")]
    sites = normalize_features(features, settings).sites
    ranked = rank_by_distance(sites, ReferenceLocation(35.0, 139.0))
    assert list(ranked["name"]) == ["first", "second", "third"]


def test_no_reference_is_identity_and_clears_annotation(sample_result):
    ranked = rank_by_distance(sample_result.sites, ReferenceLocation(36.0, 139.7))
    assert "distance_km" in ranked.columns
    cleared = rank_by_distance(ranked, None)
    assert "distance_km" not in cleared.columns
    assert list(cleared["id"]) == list(ranked["id"])


def test_non_finite_distances_sort_last(sample_result):
    sites = sample_result.sites.copy()
    sites.loc[0, "lat"] = float("nan")
    ranked = rank_by_distance(sites, ReferenceLocation(35.9, 139.6))
    assert ranked.iloc[-1]["id"] == 1
    assert pd.isna(ranked.iloc[-1]["distance_km"])


def test_rank_empty_view(sample_result):
    ranked = rank_by_distance(sample_result.sites.iloc[0:0], ReferenceLocation(35.0, 139.0))
    assert ranked.empty
    assert "distance_km" in ranked.columns
