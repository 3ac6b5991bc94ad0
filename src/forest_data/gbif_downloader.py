#!/usr/bin/env python3
"""
GBIF Occurrence Downloader

Pages through the GBIF occurrence search API for one species and keeps
records whose habitat description suggests a forest setting.
"""

from typing import List

from .acquisition_types import (
    AcquisitionRequest,
    FilterSpec,
    NormalizedRecordSet,
    Provenance,
    Provider,
    StructuredQuery,
)
from .base_downloader import BaseDownloader


class GBIFDownloader(BaseDownloader):
    """
    GBIF occurrence downloader.

    Parameters:
        scientific_name: Species name (required)
        country: ISO 3166 alpha-2 country code
        limit: Maximum number of records (default 10000)
        forest_only: Keep only forest habitats (default True). Records
            without a habitat description are kept; this is a heuristic,
            not a land-cover classification.
    """

    provider = Provider.GBIF

    def _collect(self, request: AcquisitionRequest, query: StructuredQuery,
                 provenance: Provenance) -> NormalizedRecordSet:
        record_cap = query.record_cap
        page_size = query.page_size or record_cap
        pages = []
        offset = 0

        while offset < record_cap:
            limit = min(page_size, record_cap - offset)
            params = {**query.params_dict(), 'limit': limit, 'offset': offset}

            payload = self.transport.fetch(query.endpoint, expected_format='json', params=params)
            self._record_payload(provenance, payload)
            pages.append(payload)

            body = payload.json_object()
            received = len(body.get('results') or [])
            offset += received
            self.logger.info(f"Fetched {received} occurrences (total {offset}, cap {record_cap})")

            if body.get('endOfRecords', False) or received < limit:
                break

        return self.normalizer.normalize(pages, self.provider)

    def default_filters(self, request: AcquisitionRequest) -> List[FilterSpec]:
        gbif = self.provider_config
        if not request.get('forest_only', gbif['forest_only']):
            return []
        return [FilterSpec.of('byKeyword',
                              column='habitat',
                              keywords=list(gbif['forest_keywords']),
                              caseInsensitive=True,
                              keepIfNull=True)]
