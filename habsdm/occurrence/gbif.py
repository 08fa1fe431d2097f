"""Species occurrence retrieval from GBIF."""

import logging
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
from pygbif import occurrences
from tqdm import tqdm

from habsdm.config import OccurrenceSettings
from habsdm.errors import DataSourceError

logger = logging.getLogger(__name__)

# GBIF record fields kept on each occurrence
RECORD_FIELDS = {
    "key": "gbif_id",
    "scientificName": "scientific_name",
    "decimalLongitude": "longitude",
    "decimalLatitude": "latitude",
    "coordinateUncertaintyInMeters": "coordinate_uncertainty",
    "eventDate": "event_date",
    "year": "year",
    "country": "country",
    "basisOfRecord": "basis_of_record",
}


def _record_to_row(record: Dict[str, Any]) -> Dict[str, Any]:
    return {column: record.get(field) for field, column in RECORD_FIELDS.items()}


def search_occurrences(
    species: str,
    settings: OccurrenceSettings,
    search: Optional[Callable[..., Dict[str, Any]]] = None,
) -> pd.DataFrame:
    """Page through the GBIF occurrence search for a species.

    Only records with coordinates are requested. Paging stops at the end of the
    result set or once ``settings.limit`` records have been read.

    Args:
        species: Scientific name to search for.
        settings: Query options (limit, page size and filters).
        search: The search function; defaults to ``pygbif.occurrences.search``.

    Returns:
        DataFrame with one row per occurrence record and the columns in RECORD_FIELDS.

    Raises:
        DataSourceError: If a request fails or no records are returned.
    """
    search = search or occurrences.search
    params: Dict[str, Any] = {"scientificName": species, "hasCoordinate": True}
    if settings.country:
        params["country"] = settings.country
    if settings.year:
        params["year"] = settings.year
    if settings.basis_of_record:
        params["basisOfRecord"] = settings.basis_of_record

    rows: List[Dict[str, Any]] = []
    offset = 0
    response: Dict[str, Any] = {}
    with tqdm(total=settings.limit, desc=f"GBIF {species}", unit="rec") as pbar:
        while offset < settings.limit:
            page_size = min(settings.page_size, settings.limit - offset)
            try:
                response = search(limit=page_size, offset=offset, **params)
            except Exception as e:
                logger.error(f"GBIF request failed for {species} at offset {offset}: {e}")
                raise DataSourceError(
                    f"GBIF occurrence search failed for '{species}' at offset {offset}: {e}"
                ) from e

            if not isinstance(response, dict) or "results" not in response:
                raise DataSourceError(f"Unexpected GBIF response for '{species}': {response!r}")

            results = response["results"]
            rows.extend(_record_to_row(record) for record in results)
            offset += len(results)
            pbar.update(len(results))

            if response.get("endOfRecords", True) or not results:
                break

    if not rows:
        raise DataSourceError(f"GBIF returned no occurrence records with coordinates for '{species}'.")

    if not response.get("endOfRecords", True):
        available = response.get("count", "an unknown number of")
        logger.warning(
            f"GBIF paging stopped before the end of the results for {species}: retrieved "
            f"{len(rows)} of {available} matching records (limit {settings.limit}). "
            "Raise occurrence.limit to fetch the rest."
        )
    logger.info(f"Retrieved {len(rows)} occurrence records for {species}")
    return pd.DataFrame(rows, columns=list(RECORD_FIELDS.values()))
