from __future__ import annotations

import json

import pytest
import requests

from odgrid.trips.trip_store import RawTripStore, TripLoadError


def _payload(count: int = 1):
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"count": count},
                "geometry": {"type": "LineString", "coordinates": [[139.0, 35.0], [139.01, 35.01]]},
            }
        ],
    }


class StubResponse:
    def __init__(self, payload=None, status_error: Exception | None = None, json_error: Exception | None = None):
        self.payload = payload
        self.status_error = status_error
        self.json_error = json_error

    def raise_for_status(self) -> None:
        if self.status_error is not None:
            raise self.status_error

    def json(self):
        if self.json_error is not None:
            raise self.json_error
        return self.payload


class StubSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, float]] = []

    def get(self, url: str, timeout: float):
        self.calls.append((url, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_url_load_is_memoized():
    session = StubSession([StubResponse(_payload(3))])
    store = RawTripStore(session, timeout=5.0)

    first = store.load("https://example.org/trips.geojson")
    second = store.load("https://example.org/trips.geojson")

    assert first is second
    assert store.load_count == 1
    assert session.calls == [("https://example.org/trips.geojson", 5.0)]
    assert first.records[0].weight == 3.0
    assert store.is_cached("https://example.org/trips.geojson")


def test_failed_load_is_not_cached_and_retries():
    url = "https://example.org/trips.geojson"
    session = StubSession(
        [
            StubResponse(status_error=requests.HTTPError("503 Server Error")),
            StubResponse(_payload()),
        ]
    )
    store = RawTripStore(session)

    with pytest.raises(TripLoadError) as excinfo:
        store.load(url)
    assert excinfo.value.source_id == url
    assert isinstance(excinfo.value.__cause__, requests.HTTPError)
    assert not store.is_cached(url)

    dataset = store.load(url)
    assert len(dataset) == 1
    assert store.load_count == 2


def test_connection_error_and_bad_json_are_wrapped():
    url = "http://example.org/trips.json"
    session = StubSession(
        [
            requests.ConnectionError("refused"),
            StubResponse(json_error=ValueError("Expecting value")),
            StubResponse({"type": "FeatureCollection"}),
        ]
    )
    store = RawTripStore(session)
    for _ in range(3):
        with pytest.raises(TripLoadError):
            store.load(url)
    assert not store.is_cached(url)


def test_local_geojson_and_csv(tmp_path):
    geojson_path = tmp_path / "trips.geojson"
    geojson_path.write_text(json.dumps(_payload(2)), encoding="utf-8")
    csv_path = tmp_path / "trips.csv"
    csv_path.write_text(
        "origin_lon,origin_lat,dest_lon,dest_lat,weight,hour_start,hour_end\n"
        "139.0,35.0,139.01,35.01,4,7,9\n",
        encoding="utf-8",
    )
    store = RawTripStore()

    from_json = store.load(str(geojson_path))
    from_csv = store.load(str(csv_path))

    assert from_json.records[0].weight == 2.0
    assert from_csv.records[0].weight == 4.0
    assert from_csv.records[0].interval == (7.0, 9.0)


def test_missing_and_malformed_files(tmp_path):
    store = RawTripStore()
    with pytest.raises(TripLoadError, match="does not exist"):
        store.load(str(tmp_path / "nope.geojson"))

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(TripLoadError):
        store.load(str(broken))

    table = tmp_path / "table.csv"
    table.write_text("a,b\n1,2\n", encoding="utf-8")
    with pytest.raises(TripLoadError, match="missing required columns"):
        store.load(str(table))


def test_evict_and_clear(tmp_path):
    path = tmp_path / "trips.geojson"
    path.write_text(json.dumps(_payload()), encoding="utf-8")
    store = RawTripStore()
    store.load(str(path))
    store.evict(str(path))
    assert not store.is_cached(str(path))
    store.load(str(path))
    store.clear()
    assert not store.is_cached(str(path))
    assert store.load_count == 2
