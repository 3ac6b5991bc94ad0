"""
forest-data - Environmental Dataset Acquisition Pipeline

Fetches forest-relevant environmental datasets from five public providers
and returns them as normalized, filtered record sets with provenance:

- CRU TS gridded climate (NetCDF, gzip)
- GBIF species occurrences (paged JSON API)
- MODIS vegetation index time series (ORNL web service)
- FAOSTAT forestry statistics (zipped CSV)
- EFFIS burnt areas (local shapefile)

Pipeline:
    QueryBuilder -> Transport -> SchemaNormalizer -> FilterChain
"""

__version__ = "1.0.0"
__author__ = "forest-data Development Team"

from .acquisition_types import (
    MISSING,
    AcquisitionRequest,
    AcquisitionResult,
    ColumnType,
    FilterSpec,
    GridHandle,
    NormalizedRecordSet,
    Provenance,
    Provider,
)
from .config_manager import ForestDataConfig
from .downloader_factory import DownloaderFactory, acquire
from .filter_chain import FilterChain
from .logging_utils import (
    EmptyDataset,
    ExtractionError,
    ForestDataError,
    InvalidRequest,
    MissingLocalFile,
    NetworkError,
    setup_forest_data_logging,
)
from .query_builder import QueryBuilder
from .schema_normalizer import SchemaNormalizer
from .transport import Transport

__all__ = [
    'MISSING',
    'AcquisitionRequest',
    'AcquisitionResult',
    'ColumnType',
    'DownloaderFactory',
    'EmptyDataset',
    'ExtractionError',
    'FilterChain',
    'FilterSpec',
    'ForestDataConfig',
    'ForestDataError',
    'GridHandle',
    'InvalidRequest',
    'MissingLocalFile',
    'NetworkError',
    'NormalizedRecordSet',
    'Provenance',
    'Provider',
    'QueryBuilder',
    'SchemaNormalizer',
    'Transport',
    'acquire',
    'setup_forest_data_logging',
]
