#!/usr/bin/env python3
"""
CRU TS Climate Grid Downloader

Downloads monthly CRU TS gridded climate archives (0.5 degree, NetCDF,
gzip-compressed) from the University of East Anglia, decompresses them
and describes the grid without loading it.

The archive and the decompressed NetCDF file are both kept in the
download directory; cleaning up is left to the caller.
"""

from pathlib import Path

from .acquisition_types import AcquisitionRequest, DirectQuery, GridHandle, Provenance, Provider
from .base_downloader import BaseDownloader
from .transport import ArchiveKind


class CRUDownloader(BaseDownloader):
    """
    CRU TS downloader.

    Parameters:
        variable: One of cld, dtr, frs, pet, pre, tmn, tmp, tmx, vap, wet
        start_year, end_year: Span of the published file (default 1901-2023)
        version: CRU TS version (default "4.08")
        download_dir: Output directory (default: processing.download_directory)
    """

    provider = Provider.CRU

    def _collect(self, request: AcquisitionRequest, query: DirectQuery,
                 provenance: Provenance) -> GridHandle:
        download_dir = Path(request.get('download_dir',
                                        self.config.get('processing.download_directory')))
        archive = self.transport.fetch(query.url, expected_format='gzip',
                                       destination=download_dir / query.filename)
        self._record_payload(provenance, archive)

        extracted = self.transport.extract(archive, ArchiveKind.GZIP, expected_suffix='.nc')
        self._record_extraction(provenance, extracted)

        variable = str(request.get('variable')).lower()
        return self.normalizer.normalize(extracted, self.provider, variable=variable)
