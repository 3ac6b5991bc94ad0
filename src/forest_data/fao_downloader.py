#!/usr/bin/env python3
"""
FAOSTAT Forestry Downloader

Downloads the FAOSTAT forestry bulk archive (a zip holding wide-format
CSV tables), extracts the table and optionally narrows it to one country
and one product type.
"""

import tempfile
from pathlib import Path
from typing import List

from .acquisition_types import (
    AcquisitionRequest,
    DirectQuery,
    FilterSpec,
    NormalizedRecordSet,
    Provenance,
    Provider,
)
from .base_downloader import BaseDownloader
from .transport import ArchiveKind


class FAODownloader(BaseDownloader):
    """
    FAOSTAT forestry bulk downloader.

    Parameters:
        country: Area name to keep (exact match, e.g. "Slovenia")
        product_type: Item keyword to keep (e.g. "Roundwood")
        download_dir: Keep the archive here; by default a temporary
            directory is used and removed once the table is loaded
    """

    provider = Provider.FAO

    def _collect(self, request: AcquisitionRequest, query: DirectQuery,
                 provenance: Provenance) -> NormalizedRecordSet:
        download_dir = request.get('download_dir')
        if download_dir is not None:
            return self._fetch_and_normalize(query, Path(download_dir), provenance)

        with tempfile.TemporaryDirectory(prefix='forest_data_fao_') as temp_dir:
            return self._fetch_and_normalize(query, Path(temp_dir), provenance)

    def _fetch_and_normalize(self, query: DirectQuery, work_dir: Path,
                             provenance: Provenance) -> NormalizedRecordSet:
        fao = self.provider_config
        archive = self.transport.fetch(query.url, expected_format='zip',
                                       destination=work_dir / query.filename)
        self._record_payload(provenance, archive)

        table = self.transport.extract(archive, ArchiveKind.ZIP,
                                       expected_suffix=fao.get('csv_suffix', '.csv'))
        self._record_extraction(provenance, table)

        return self.normalizer.normalize(table, self.provider)

    def default_filters(self, request: AcquisitionRequest) -> List[FilterSpec]:
        filters = []
        if request.get('country') is not None:
            filters.append(FilterSpec.of('byCategory', column='Area', value=request.get('country')))
        if request.get('product_type') is not None:
            filters.append(FilterSpec.of('byKeyword', column='Item',
                                         keywords=[request.get('product_type')],
                                         keepIfNull=False))
        return filters
