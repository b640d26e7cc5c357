import pytest

from aedmap.normalize import normalize_features
from aedmap.settings import Settings


def feature(name, region, lon, lat, **props):
    properties = {"施設名称": name, "市区町村": region}
    properties.update(props)
    return {"type": "Feature", "properties": properties, "geometry": {"type": "Point", "coordinates": [lon, lat]}}


def collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def sample_features():
    return [
        feature("市役所", "Region A", 139.60, 35.90, 住所="本町1-1", 設置場所="1階ロビー", OBJECTID=1),
        feature("中央図書館", "Region A", 139.65, 35.95, 住所="中町2-2", 設置場所="受付", OBJECTID=2),
        feature("体育館", "Region B", 139.70, 36.00, 住所="東町3-3", 設置場所="入口", OBJECTID=3),
    ]


@pytest.fixture
def sample_result(sample_features, settings):
    return normalize_features(sample_features, settings)
