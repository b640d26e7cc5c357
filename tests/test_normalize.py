import math

import pytest

from aedmap.errors import DecodeError
from aedmap.normalize import normalize_feature, normalize_features, parse_feature_collection, pick_first
from aedmap.settings import Settings

from conftest import feature


def test_pick_first_skips_blank_values():
    row = {"施設名称": "  ", "施設名等": "公民館", "name": "ignored"}
    assert pick_first(row, ["施設名称", "施設名等", "name"]) == "公民館"
    assert pick_first({}, ["a", "b"]) == ""


def test_normalize_feature_swaps_coordinates_and_fills_defaults(settings):
    site = normalize_feature(feature("駅前交番", " 川口市 ", 139.72, 35.80), 4, settings)
    assert site is not None
    assert (site.lat, site.lon) == (35.80, 139.72)
    assert site.region == "川口市"
    assert site.address == "-"
    assert site.location == "-"
    assert site.phone == ""
    assert site.prefecture == "埼玉県"
    assert site.id == "row-4"
    assert site.synthetic_id is True


def test_normalize_feature_uses_source_id_and_fallback_name(settings):
    raw = {"properties": {"施設名等": "保育園", "OBJECTID": 77}, "geometry": {"coordinates": [139.1, 35.1]}}
    site = normalize_feature(raw, 0, settings)
    assert site.id == 77
    assert site.synthetic_id is False
    assert site.name == "保育園"
    assert site.region == "不明"


def test_missing_name_uses_placeholder(settings):
    raw = {"properties": {}, "geometry": {"coordinates": [139.1, 35.1]}}
    assert normalize_feature(raw, 0, settings).name == "名称未設定"


def test_default_prefecture_is_configurable():
    settings = Settings(default_prefecture="東京都")
    site = normalize_feature(feature("x", "y", 139.0, 35.0), 0, settings)
    assert site.prefecture == "東京都"


@pytest.mark.parametrize(
    "coords",
    [
        [139.1, "35.1"],
        ["abc", 35.1],
        [139.1, None],
        [math.inf, 35.1],
        [139.1, math.nan],
        [True, 35.1],
        [10**400, 35.0],
        [139.1],
        None,
    ],
)
def test_unusable_coordinates_are_dropped(settings, coords):
    raw = {"properties": {"施設名称": "x"}, "geometry": {"coordinates": coords}}
    assert normalize_feature(raw, 0, settings) is None


def test_three_records_one_bad_longitude_yields_two_sites(settings):
    features = [
        feature("a", "Region A", 139.1, 35.1),
        feature("b", "Region A", "not-a-number", 35.2),
        feature("c", "Region B", 139.3, 35.3),
    ]
    result = normalize_features(features, settings)
    assert len(result.sites) == 2
    assert result.dropped == 1
    assert list(result.sites["name"]) == ["a", "c"]
    # Ordinal ids keep the source position, not the position after filtering.
    assert list(result.sites["id"]) == ["row-0", "row-2"]


def test_every_site_has_finite_coordinates(settings):
    features = [
        feature("ok", "r", 139.0, 35.0),
        feature("nan", "r", math.nan, 35.0),
        {"properties": {}, "geometry": None},
        {"properties": None},
        "not a mapping",
    ]
    result = normalize_features(features, settings)
    assert result.dropped == 4
    assert all(math.isfinite(v) for v in result.sites["lat"])
    assert all(math.isfinite(v) for v in result.sites["lon"])


def test_empty_input_gives_empty_frame_with_columns(settings):
    result = normalize_features([], settings)
    assert result.sites.empty
    assert "region" in result.sites.columns


def test_parse_feature_collection_shapes():
    assert parse_feature_collection({"type": "FeatureCollection", "features": [{"a": 1}]}) == [{"a": 1}]
    assert parse_feature_collection({"type": "FeatureCollection"}) == []
    assert parse_feature_collection([{"a": 1}]) == [{"a": 1}]
    with pytest.raises(DecodeError):
        parse_feature_collection("oops")
    with pytest.raises(DecodeError):
        parse_feature_collection({"features": "nope"})


def test_ordinal_ids_do_not_collide_with_source_ids(settings):
    features = [
        feature("no id", "r", 139.0, 35.0),
        feature("with id", "r", 139.1, 35.1, OBJECTID=0),
    ]
    result = normalize_features(features, settings)
    assert list(result.sites["id"]) == ["row-0", 0]
    assert list(result.sites["synthetic_id"]) == [True, False]


def test_oversized_coordinate_drops_only_that_record(settings):
    features = [feature("huge", "r", 10**400, 35.0), feature("ok", "r", 139.0, 35.0)]
    result = normalize_features(features, settings)
    assert result.dropped == 1
    assert list(result.sites["name"]) == ["ok"]
