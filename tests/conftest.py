from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from railops.cache import ReportCache
from railops.data import RecordStore
from railops.models import DetentionRecord, LoadingRecord


@pytest.fixture
def sample_records():
    return [
        LoadingRecord(date=date(2025, 1, 1), station="KRBA", commodity="COAL", wagons=10, tonnage=500),
        LoadingRecord(date=date(2025, 1, 1), station="KRBA", commodity="COAL", wagons=5, tonnage=250),
        LoadingRecord(date=date(2025, 1, 2), station="BSP", commodity="IRON", wagons=8, tonnage=400),
    ]


@pytest.fixture
def store():
    return RecordStore(None, cache=ReportCache(refresh_interval=30))


@pytest.fixture
def seeded_store(store, sample_records):
    store.bulk_insert(sample_records)
    store.bulk_insert(
        [
            LoadingRecord(date=date(2024, 12, 30), station="KRBA", commodity="COAL", wagons=20, tonnage=1000, freight=5000),
            LoadingRecord(date=date(2024, 12, 31), station="BSP", commodity="CEMENT", wagons=4, tonnage=200, freight=800),
        ]
    )
    return store


def make_detention(station="KRBA", wagon_type="BOXNHL", minutes=60, rake_id="R1", start=None):
    arrival = start or datetime(2025, 1, 1, 8, 0)
    third = timedelta(minutes=minutes / 3)
    return DetentionRecord(
        station_id=station,
        rake_id=rake_id,
        arrival_time=arrival,
        placement_time=arrival + third,
        release_time=arrival + 2 * third,
        departure_time=arrival + timedelta(minutes=minutes),
        wagon_type=wagon_type,
    )


def detention_payload(station="KRBA", rake_id="R1", minutes=90, wagon_type="BOXNHL"):
    rec = make_detention(station=station, wagon_type=wagon_type, minutes=minutes, rake_id=rake_id)
    return {
        "station_id": rec.station_id,
        "rake_id": rec.rake_id,
        "wagon_type": rec.wagon_type,
        "arrival_time": rec.arrival_time.isoformat(),
        "placement_time": rec.placement_time.isoformat(),
        "release_time": rec.release_time.isoformat(),
        "departure_time": rec.departure_time.isoformat(),
    }


@pytest.fixture
def detention_factory():
    return make_detention


@pytest.fixture
def detention_body():
    return detention_payload
