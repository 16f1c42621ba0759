"""Memoizing loader for raw trip datasets (local files or HTTP URLs)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd
import requests

from .trip_records import TripDataset, TripRecord, build_dataset, records_from_dataframe, records_from_geojson

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
GEOJSON_SUFFIXES = {".geojson", ".json"}
TABLE_SUFFIXES = {".csv", ".gz"}


class TripLoadError(RuntimeError):
    """Raised when a trip dataset cannot be fetched or parsed."""

    def __init__(self, source_id: str, message: str):
        super().__init__(f"Failed to load trips from {source_id}: {message}")
        self.source_id = source_id


class RawTripStore:
    """
    Loads one immutable :class:`TripDataset` per source identifier.

    A source identifier is either a local path or an ``http(s)://`` URL.
    Successful loads are cached by identifier for the lifetime of the store;
    failures propagate as :class:`TripLoadError` and leave the cache untouched
    so a later call retries the load.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session
        self._timeout = float(timeout)
        self._datasets: Dict[str, TripDataset] = {}
        self.load_count = 0

    # ------------------------------------------------------------------ public
    def load(self, source_id: str) -> TripDataset:
        """Return the cached dataset for ``source_id``, loading it on first use."""
        key = str(source_id)
        cached = self._datasets.get(key)
        if cached is not None:
            return cached
        self.load_count += 1
        records, skipped = self._load_records(key)
        dataset = build_dataset(key, records, skipped)
        self._datasets[key] = dataset
        return dataset

    def is_cached(self, source_id: str) -> bool:
        return str(source_id) in self._datasets

    def evict(self, source_id: str) -> None:
        self._datasets.pop(str(source_id), None)

    def clear(self) -> None:
        self._datasets.clear()

    # ----------------------------------------------------------------- loaders
    def _load_records(self, source_id: str) -> Tuple[List[TripRecord], int]:
        if source_id.startswith(("http://", "https://")):
            return self._load_url(source_id)
        return self._load_path(source_id)

    def _load_url(self, url: str) -> Tuple[List[TripRecord], int]:
        session = self._ensure_session()
        try:
            response = session.get(url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as exc:
            raise TripLoadError(url, str(exc)) from exc
        except ValueError as exc:
            raise TripLoadError(url, f"response is not valid JSON ({exc})") from exc
        return self._parse_geojson(url, payload)

    def _load_path(self, source_id: str) -> Tuple[List[TripRecord], int]:
        path = Path(source_id)
        if not path.exists():
            raise TripLoadError(source_id, "file does not exist")
        suffix = path.suffix.lower()
        if suffix in TABLE_SUFFIXES:
            try:
                df = pd.read_csv(path)
                return records_from_dataframe(df)
            except (OSError, ValueError) as exc:
                raise TripLoadError(source_id, str(exc)) from exc
        if suffix not in GEOJSON_SUFFIXES:
            logger.debug("Unknown suffix %r for %s; parsing as GeoJSON", suffix, source_id)
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, ValueError) as exc:
            raise TripLoadError(source_id, str(exc)) from exc
        return self._parse_geojson(source_id, payload)

    @staticmethod
    def _parse_geojson(source_id: str, payload: object) -> Tuple[List[TripRecord], int]:
        try:
            return records_from_geojson(payload)
        except (TypeError, ValueError) as exc:
            raise TripLoadError(source_id, str(exc)) from exc

    def _ensure_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session


__all__ = ["RawTripStore", "TripLoadError"]
