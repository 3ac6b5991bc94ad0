#!/usr/bin/env python3
"""
MODIS Vegetation Index Downloader

Retrieves MODIS vegetation index time series (EVI by default) for a small
window around one site from the ORNL DAAC MODIS web service.

The service answers subset requests for a limited number of composite
dates at a time, so the available dates are listed first and then
requested in chunks.
"""

from typing import List

from .acquisition_types import (
    AcquisitionRequest,
    NormalizedRecordSet,
    Provenance,
    Provider,
    StructuredQuery,
)
from .base_downloader import BaseDownloader
from .logging_utils import EmptyDataset


class MODISDownloader(BaseDownloader):
    """
    MODIS ORNL subset downloader.

    Parameters:
        lat, lon: Site coordinates in decimal degrees (required)
        start_date, end_date: ISO-8601 dates (default 2000-01-01 to today)
        product: MODIS product (default MOD13Q1)
        band: Product band (default 250m_16_days_EVI)
    """

    provider = Provider.MODIS

    def _collect(self, request: AcquisitionRequest, query: StructuredQuery,
                 provenance: Provenance) -> NormalizedRecordSet:
        params = query.params_dict()
        dates = self._available_dates(query, provenance)
        if not dates:
            raise EmptyDataset(
                f"No {self.provider.value} composites between {params['startDate']} and {params['endDate']}",
                {'site': query.site_id, 'start': params['startDate'], 'end': params['endDate']}
            )

        chunk_size = query.page_size or len(dates)
        payloads = []
        for index in range(0, len(dates), chunk_size):
            chunk = dates[index:index + chunk_size]
            chunk_params = {**params, 'startDate': chunk[0], 'endDate': chunk[-1]}
            payload = self.transport.fetch(query.endpoint, expected_format='json', params=chunk_params)
            self._record_payload(provenance, payload)
            payloads.append(payload)

        self.logger.info(f"Retrieved {len(dates)} composites for {query.site_id} in {len(payloads)} requests")

        constants = {
            'site': query.site_id,
            'product': request.get('product', self.provider_config['product']),
            'band': params['band'],
        }
        return self.normalizer.normalize(payloads, self.provider, constants=constants)

    def _available_dates(self, query: StructuredQuery, provenance: Provenance) -> List[str]:
        """Composite dates (AYYYYDDD) offered for the site within the query window."""
        params = query.params_dict()
        catalog = self.transport.fetch(
            query.catalog_endpoint,
            expected_format='json',
            params={'latitude': params['latitude'], 'longitude': params['longitude']},
        )
        self._record_payload(provenance, catalog)

        # AYYYYDDD strings are fixed width, so they compare chronologically
        start, end = params['startDate'], params['endDate']
        return sorted(
            entry['modis_date'] for entry in catalog.json_object().get('dates') or []
            if isinstance(entry, dict) and entry.get('modis_date') and start <= entry['modis_date'] <= end
        )
