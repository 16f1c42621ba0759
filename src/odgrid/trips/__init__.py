"""Trip records, time-band filtering and the raw dataset store."""

from .time_band import TimeBand, bands_overlap, extract_interval, filter_by_time_band, passes_time_band
from .trip_records import TripDataset, TripRecord, records_from_dataframe, records_from_geojson
from .trip_store import RawTripStore, TripLoadError

__all__ = [
    "RawTripStore",
    "TimeBand",
    "TripDataset",
    "TripLoadError",
    "TripRecord",
    "bands_overlap",
    "extract_interval",
    "filter_by_time_band",
    "passes_time_band",
    "records_from_dataframe",
    "records_from_geojson",
]
