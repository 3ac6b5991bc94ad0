#!/usr/bin/env python3
"""
EFFIS Burnt Area Processor

Reads a locally downloaded EFFIS burnt-area shapefile (the EFFIS archive
requires a manual download) and filters fires by country, fire date and
burnt area.
"""

from pathlib import Path
from typing import List

from .acquisition_types import (
    AcquisitionRequest,
    FilterSpec,
    LocalQuery,
    NormalizedRecordSet,
    Provenance,
    Provider,
    RawPayload,
)
from .base_downloader import BaseDownloader
from .logging_utils import MissingLocalFile


class EFFISProcessor(BaseDownloader):
    """
    EFFIS burnt area processor. Never touches the network.

    Parameters:
        shapefile_path: Path to the EFFIS ``.shp`` file (required)
        country_code: Two-letter country code matched against COUNTRY
        start_date, end_date: Inclusive FIREDATE window
        min_area_ha: Minimum burnt area in hectares
    """

    provider = Provider.EFFIS

    def _check_local_sources(self, request: AcquisitionRequest) -> None:
        path = Path(str(request.get('shapefile_path')))
        if not path.is_file():
            raise MissingLocalFile(
                f"EFFIS shapefile not found: {path}. Download it from the EFFIS data portal first.",
                {'shapefile_path': str(path)}
            )

    def _collect(self, request: AcquisitionRequest, query: LocalQuery,
                 provenance: Provenance) -> NormalizedRecordSet:
        payload = RawPayload(origin_url=str(query.path), content_type='shapefile',
                             path=query.path, byte_count=query.path.stat().st_size)
        self._record_payload(provenance, payload)
        return self.normalizer.normalize(payload, self.provider)

    def default_filters(self, request: AcquisitionRequest) -> List[FilterSpec]:
        filters = []
        if request.get('country_code') is not None:
            filters.append(FilterSpec.of('byCategory', column='COUNTRY',
                                         value=str(request.get('country_code')).strip().upper()))

        start, end = request.get('start_date'), request.get('end_date')
        if start is not None or end is not None:
            filters.append(FilterSpec.of('byDateRange', column='FIREDATE', start=start, end=end))

        if request.get('min_area_ha') is not None:
            filters.append(FilterSpec.of('byMinimum', column='AREA_HA',
                                         threshold=request.get('min_area_ha')))
        return filters
