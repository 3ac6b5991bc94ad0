"""
Query Construction for Provider Requests

Turns a uniform AcquisitionRequest into either a fully resolved download
URL (CRU, FAO), a structured REST request (GBIF, MODIS) or a validated
local source (EFFIS). Building is pure: identical requests always give
equal queries, and nothing here touches the network or the filesystem.

The only clock dependency is the MODIS end-date default ("today"); pass
``today`` to pin it.
"""

from datetime import date
from pathlib import Path
from typing import Callable, Dict, Optional
import logging

from .acquisition_types import (
    AcquisitionRequest,
    DirectQuery,
    LocalQuery,
    Provider,
    ResolvedQuery,
    StructuredQuery,
)
from .config_manager import ForestDataConfig
from .logging_utils import InvalidRequest
from .time_utils import parse_iso_date, to_modis_date, validate_date_window
from .validation import (
    validate_choice,
    validate_coordinates,
    validate_country_code,
    validate_non_empty_text,
    validate_positive_integer,
    validate_year_range,
)

logger = logging.getLogger(__name__)


def modis_site_id(lat: float, lon: float) -> str:
    """
    Stable site identifier from coordinates rounded to two decimals.

    Example:
        >>> modis_site_id(45.56628, 14.52124)
        'site_45.57_14.52'
    """
    return f"site_{round(lat, 2):g}_{round(lon, 2):g}"


class QueryBuilder:
    """
    Build provider-specific queries from AcquisitionRequests.

    Provider defaults (CRU version and year span, GBIF record cap, MODIS
    product, band and start date, endpoint URLs) come from the
    configuration.
    """

    def __init__(self, config: Optional[ForestDataConfig] = None, today: Optional[date] = None):
        """
        Args:
            config: Configuration holding provider defaults and endpoints
            today: Fixed "current date" for MODIS end-date defaults
        """
        self.config = config or ForestDataConfig()
        self.today = today

        self._builders: Dict[Provider, Callable[[AcquisitionRequest], ResolvedQuery]] = {
            Provider.CRU: self._build_cru,
            Provider.GBIF: self._build_gbif,
            Provider.MODIS: self._build_modis,
            Provider.FAO: self._build_fao,
            Provider.EFFIS: self._build_effis,
        }

    def build(self, request: AcquisitionRequest) -> ResolvedQuery:
        """
        Resolve a request into a provider query.

        Raises:
            InvalidRequest: On missing parameters, malformed dates or
                coordinates outside the valid range
        """
        query = self._builders[request.provider](request)
        logger.debug(f"Built {request.provider.value} query: {query}")
        return query

    def _provider_config(self, provider: Provider) -> Dict:
        return self.config.get_provider_config(provider.value)

    def _build_cru(self, request: AcquisitionRequest) -> DirectQuery:
        cru = self._provider_config(Provider.CRU)

        variable = validate_choice(request.get('variable'), cru['variables'], 'CRU variable')
        start_year, end_year = validate_year_range(
            request.get('start_year', cru['start_year']),
            request.get('end_year', cru['end_year']),
        )
        version = str(request.get('version', cru['version']))
        release_id = str(request.get('release_id', cru['release_id']))

        # CRU naming convention: cru_ts<version>.<start>.<end>.<variable>.dat.nc.gz
        filename = f"cru_ts{version}.{start_year}.{end_year}.{variable}.dat.nc.gz"
        url = (
            f"{cru['base_url'].rstrip('/')}/cru_ts_{version}/"
            f"cruts.{release_id}.v{version}/{variable}/{filename}"
        )
        return DirectQuery(url=url, filename=filename)

    def _build_fao(self, request: AcquisitionRequest) -> DirectQuery:
        url = self._provider_config(Provider.FAO)['bulk_url']
        return DirectQuery(url=url, filename=url.rstrip('/').rsplit('/', 1)[-1])

    def _build_gbif(self, request: AcquisitionRequest) -> StructuredQuery:
        gbif = self._provider_config(Provider.GBIF)

        scientific_name = validate_non_empty_text(request.get('scientific_name'), 'scientific name')
        record_cap = validate_positive_integer(request.get('limit', gbif['limit']), 'limit')

        params = [
            ('scientificName', scientific_name),
            ('hasCoordinate', 'true'),
            ('hasGeospatialIssue', 'false'),
        ]
        country = request.get('country')
        if country is not None:
            params.append(('country', validate_country_code(country)))

        return StructuredQuery(
            endpoint=f"{gbif['api_url'].rstrip('/')}/occurrence/search",
            params=tuple(params),
            record_cap=record_cap,
            page_size=min(int(gbif['page_size']), record_cap),
        )

    def _build_modis(self, request: AcquisitionRequest) -> StructuredQuery:
        modis = self._provider_config(Provider.MODIS)

        lat, lon = validate_coordinates(request.get('lat'), request.get('lon'))
        start = parse_iso_date(request.get('start_date', modis['start_date']), 'start_date')
        end_value = request.get('end_date')
        if end_value is None:
            end = self.today or date.today()
        else:
            end = parse_iso_date(end_value, 'end_date')
        validate_date_window(start, end)

        product = validate_non_empty_text(request.get('product', modis['product']), 'MODIS product')
        band = validate_non_empty_text(request.get('band', modis['band']), 'MODIS band')
        api_url = modis['api_url'].rstrip('/')

        params = (
            ('latitude', lat),
            ('longitude', lon),
            ('band', band),
            ('startDate', to_modis_date(start)),
            ('endDate', to_modis_date(end)),
            ('kmAboveBelow', int(modis['km_above_below'])),
            ('kmLeftRight', int(modis['km_left_right'])),
        )

        return StructuredQuery(
            endpoint=f"{api_url}/{product}/subset",
            params=params,
            page_size=int(modis['dates_per_request']),
            site_id=modis_site_id(lat, lon),
            catalog_endpoint=f"{api_url}/{product}/dates",
        )

    def _build_effis(self, request: AcquisitionRequest) -> LocalQuery:
        path = request.get('shapefile_path')
        if not str(path).strip():
            raise InvalidRequest("shapefile_path must not be empty", {'shapefile_path': path})

        start, end = request.get('start_date'), request.get('end_date')
        start_date = parse_iso_date(start, 'start_date') if start is not None else None
        end_date = parse_iso_date(end, 'end_date') if end is not None else None
        if start_date and end_date:
            validate_date_window(start_date, end_date)

        if request.get('country_code') is not None:
            validate_country_code(request.get('country_code'))

        min_area = request.get('min_area_ha')
        if min_area is not None:
            try:
                float(min_area)
            except (TypeError, ValueError):
                raise InvalidRequest(f"min_area_ha must be numeric, got: {min_area!r}",
                                     {'min_area_ha': min_area})

        return LocalQuery(path=Path(path))
