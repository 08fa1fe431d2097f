import logging

import pytest
import numpy as np
import pandas as pd

from habsdm.config import OccurrenceSettings
from habsdm.errors import DataSourceError
from habsdm.occurrence.cleaning import to_presence_points
from habsdm.occurrence.gbif import search_occurrences


def test_pages_until_end_of_records(fake_search, gbif_records):
    records = search_occurrences("Myotis testus", OccurrenceSettings(limit=1000, page_size=25), search=fake_search)

    assert len(records) == len(gbif_records)
    assert [call["offset"] for call in fake_search.calls] == [0, 25, 50]
    assert all(call["hasCoordinate"] is True for call in fake_search.calls)
    assert records["gbif_id"].tolist() == [r["key"] for r in gbif_records]


def test_limit_caps_records(fake_search):
    records = search_occurrences("Myotis testus", OccurrenceSettings(limit=30, page_size=25), search=fake_search)

    assert len(records) == 30
    assert [call["limit"] for call in fake_search.calls] == [25, 5]


def test_filters_are_passed_through(fake_search):
    settings = OccurrenceSettings(country="GB", year="2000,2020", basis_of_record="HUMAN_OBSERVATION")

    search_occurrences("Myotis testus", settings, search=fake_search)

    call = fake_search.calls[0]
    assert call["scientificName"] == "Myotis testus"
    assert call["country"] == "GB"
    assert call["year"] == "2000,2020"
    assert call["basisOfRecord"] == "HUMAN_OBSERVATION"


def test_request_failure_raises_data_source_error():
    def failing_search(**kwargs):
        raise ConnectionError("network down")

    with pytest.raises(DataSourceError, match="network down"):
        search_occurrences("Myotis testus", OccurrenceSettings(), search=failing_search)


def test_empty_result_raises():
    def empty_search(**kwargs):
        return {"endOfRecords": True, "results": []}

    with pytest.raises(DataSourceError):
        search_occurrences("Nobody", OccurrenceSettings(), search=empty_search)


def test_unexpected_response_raises():
    with pytest.raises(DataSourceError):
        search_occurrences("Myotis testus", OccurrenceSettings(), search=lambda **kwargs: ["bad"])


def test_presence_points_drop_invalid_coordinates():
    records = pd.DataFrame({
        "gbif_id": [1, 2, 3, 4, 5],
        "longitude": [1.0, None, 200.0, 2.0, 2.0],
        "latitude": [50.0, 51.0, 52.0, 53.0, 53.0],
    })

    points = to_presence_points(records)

    # duplicates are kept
    assert points["gbif_id"].tolist() == [1, 4, 5]
    assert (points["class"] == 1).all()
    assert points.crs == "EPSG:4326"
    assert np.allclose(points.geometry.x, [1.0, 2.0, 2.0])


def test_presence_points_need_at_least_one_valid_record():
    records = pd.DataFrame({"gbif_id": [1], "longitude": [None], "latitude": [None]})
    with pytest.raises(DataSourceError):
        to_presence_points(records)


def test_truncation_at_limit_is_logged(fake_search, caplog):
    with caplog.at_level(logging.WARNING, logger="habsdm.occurrence.gbif"):
        records = search_occurrences("Myotis testus", OccurrenceSettings(limit=10, page_size=25), search=fake_search)

    assert len(records) == 10
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "10 of 60" in warnings[0].getMessage()


def test_complete_result_is_not_flagged(fake_search, caplog):
    with caplog.at_level(logging.WARNING, logger="habsdm.occurrence.gbif"):
        search_occurrences("Myotis testus", OccurrenceSettings(limit=1000, page_size=25), search=fake_search)

    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
