from __future__ import annotations

import math

import pandas as pd
import pytest

from odgrid.trips.trip_records import (
    build_dataset,
    coerce_weight,
    record_from_feature,
    records_from_dataframe,
    records_from_geojson,
)


def _line_feature(coords, **properties):
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "LineString", "coordinates": coords},
    }


def test_feature_uses_first_and_last_vertex():
    record = record_from_feature(
        _line_feature([[139.0, 35.0], [139.5, 35.5], [140.0, 36.0]], count=4, timeband="7-9")
    )
    assert record.origin == (139.0, 35.0)
    assert record.destination == (140.0, 36.0)
    assert record.weight == 4.0
    assert record.interval == (7.0, 9.0)
    assert record.properties["count"] == 4


def test_weight_fallback_properties():
    assert record_from_feature(_line_feature([[0, 0], [1, 1]], weight="2.5")).weight == 2.5
    assert record_from_feature(_line_feature([[0, 0], [1, 1]], vol=3)).weight == 3.0
    assert math.isnan(record_from_feature(_line_feature([[0, 0], [1, 1]])).weight)


@pytest.mark.parametrize(
    "feature",
    [
        {"type": "Feature", "properties": {"count": 1}, "geometry": None},
        _line_feature([[0, 0]], count=1),
        {"type": "Feature", "properties": {}, "geometry": {"type": "Point", "coordinates": [0, 0]}},
        {"type": "Feature", "properties": {}, "geometry": {"type": "LineString"}},
        "not a feature",
    ],
)
def test_malformed_geometry_is_rejected(feature):
    assert record_from_feature(feature) is None


def test_coerce_weight():
    assert coerce_weight("3") == 3.0
    assert math.isnan(coerce_weight(None))
    assert math.isnan(coerce_weight("lots"))
    assert math.isnan(coerce_weight(True))


def test_geojson_counts_skipped_features():
    payload = {
        "type": "FeatureCollection",
        "features": [
            _line_feature([[0, 0], [1, 1]], count=1),
            {"type": "Feature", "properties": {}, "geometry": None},
            _line_feature([[0, 0], [2, 2]], count=0),
        ],
    }
    records, skipped = records_from_geojson(payload)
    assert len(records) == 2
    assert skipped == 1
    # Invalid weights are kept at ingestion; aggregation excludes them.
    assert not records[1].has_valid_weight


def test_geojson_payload_shape_errors():
    with pytest.raises(TypeError):
        records_from_geojson(["features"])
    with pytest.raises(ValueError):
        records_from_geojson({"type": "FeatureCollection"})


def test_dataframe_records():
    df = pd.DataFrame(
        [
            {"origin_lon": 0.0, "origin_lat": 0.0, "dest_lon": 1.0, "dest_lat": 1.0, "weight": 2, "timeband": "7-9"},
            {"origin_lon": None, "origin_lat": 0.0, "dest_lon": 1.0, "dest_lat": 1.0, "weight": 2, "timeband": None},
        ]
    )
    records, skipped = records_from_dataframe(df)
    assert skipped == 1
    assert len(records) == 1
    assert records[0].weight == 2.0
    assert records[0].interval == (7.0, 9.0)


def test_dataframe_missing_columns():
    with pytest.raises(ValueError, match="dest_lat"):
        records_from_dataframe(pd.DataFrame([{"origin_lon": 0, "origin_lat": 0, "dest_lon": 1, "weight": 1}]))


def test_build_dataset_logs_skipped(caplog):
    caplog.set_level("INFO")
    records, skipped = records_from_geojson(
        {"features": [_line_feature([[0, 0], [1, 1]], count=1), {"geometry": None}]}
    )
    dataset = build_dataset("memory", records, skipped)
    assert len(dataset) == 1
    assert dataset.skipped_features == 1
    assert "Skipped 1 trip features" in caplog.text
