"""
Schema Normalization for Provider Payloads

Coerces each provider's raw payload (JSON records, CSV rows, shapefile
attribute tables, NetCDF grids) into typed record sets with a declared
column schema.

Coercion policy:
- A cell that cannot be coerced to its declared type becomes missing and
  increments a per-column failure counter; normalization itself carries on.
- Declared columns absent from a payload are added as all-missing.
- A payload with zero records fails with EmptyDataset.

Gridded data (CRU) is not flattened to rows: it is described through a
pluggable grid reader and returned as a GridHandle.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import xarray as xr

from .acquisition_types import (
    ColumnType,
    GridHandle,
    NormalizedRecordSet,
    Provider,
    RawPayload,
    is_missing,
)
from .config_manager import ForestDataConfig
from .logging_utils import EmptyDataset, ExtractionError, error_context
from .time_utils import parse_modis_date

NUMERIC = ColumnType.NUMERIC
DATE = ColumnType.DATE
CATEGORICAL = ColumnType.CATEGORICAL
GEOMETRY = ColumnType.GEOMETRY

GBIF_SCHEMA = {
    'key': CATEGORICAL,
    'scientificName': CATEGORICAL,
    'decimalLatitude': NUMERIC,
    'decimalLongitude': NUMERIC,
    'countryCode': CATEGORICAL,
    'basisOfRecord': CATEGORICAL,
    'habitat': CATEGORICAL,
    'eventDate': DATE,
}

MODIS_SCHEMA = {
    'site': CATEGORICAL,
    'product': CATEGORICAL,
    'band': CATEGORICAL,
    'modis_date': CATEGORICAL,
    'date': DATE,
    'pixel': NUMERIC,
    'value': NUMERIC,
}

# Land cover percentages within each burnt area
EFFIS_LAND_COVER_COLUMNS = ['BROADLEA', 'CONIFER', 'MIXED', 'SCLEROPH', 'TRANSIT', 'AGRIAREAS']

EFFIS_SCHEMA = {
    'FIREDATE': DATE,
    'LASTUPDATE': DATE,
    'COUNTRY': CATEGORICAL,
    'AREA_HA': NUMERIC,
    **{column: NUMERIC for column in EFFIS_LAND_COVER_COLUMNS},
}

# FAOSTAT wide format: Y1961..Y20xx values and integer code columns
FAO_NUMERIC_COLUMN = re.compile(r'^Y\d{4}$|Code$')


def _count_failures(raw: pd.Series, coerced: pd.Series) -> int:
    present = raw.map(lambda value: not is_missing(value))
    return int((present & coerced.isna()).sum())


def _blank_to_missing(raw: pd.Series) -> pd.Series:
    def clean(value):
        if isinstance(value, str):
            value = value.strip()
            return np.nan if value == '' else value
        return value
    return raw.map(clean)


def coerce_numeric(raw: pd.Series) -> Tuple[pd.Series, int]:
    """Coerce to float; unparseable cells become NaN and are counted."""
    raw = _blank_to_missing(raw)
    coerced = pd.to_numeric(raw, errors='coerce').astype(float)
    return coerced, _count_failures(raw, coerced)


def coerce_date(raw: pd.Series, date_format: Optional[str] = None) -> Tuple[pd.Series, int]:
    """
    Coerce to timestamps; unparseable cells become NaT and are counted.

    Without ``date_format`` values are parsed as ISO-8601 and normalized to
    naive UTC, so mixed offsets and date-only values can share a column.
    """
    raw = _blank_to_missing(raw)
    text = raw.map(lambda value: None if is_missing(value) else str(value)).astype(object)

    if date_format:
        coerced = pd.to_datetime(text, format=date_format, errors='coerce')
    else:
        coerced = pd.to_datetime(text, format='ISO8601', errors='coerce', utc=True)
        coerced = coerced.dt.tz_localize(None)

    return coerced, _count_failures(raw, coerced)


def coerce_categorical(raw: pd.Series) -> Tuple[pd.Series, int]:
    """Strings, with blanks treated as missing. Never fails."""
    raw = _blank_to_missing(raw)
    coerced = raw.map(lambda value: None if is_missing(value) else str(value)).astype(object)
    return coerced, 0


def build_record_set(frame: pd.DataFrame,
                     schema: Dict[str, ColumnType],
                     date_formats: Optional[Dict[str, str]] = None,
                     source: str = 'payload') -> NormalizedRecordSet:
    """
    Coerce a raw frame to a declared schema.

    Args:
        frame: Raw values (strings or mixed types)
        schema: Column name to declared type, in output order
        date_formats: Optional fixed parse format per date column
        source: Label used in error messages

    Returns:
        NormalizedRecordSet: Typed record set with failure counts

    Raises:
        EmptyDataset: If the frame holds no records
    """
    if len(frame) == 0:
        raise EmptyDataset(f"No parseable records in {source}", {'source': source})

    date_formats = date_formats or {}
    normalized = frame.copy()
    failures: Dict[str, int] = {}

    for column, column_type in schema.items():
        if column not in normalized.columns:
            normalized[column] = np.nan

        if column_type is NUMERIC:
            normalized[column], failures[column] = coerce_numeric(normalized[column])
        elif column_type is DATE:
            normalized[column], failures[column] = coerce_date(normalized[column],
                                                               date_formats.get(column))
        elif column_type is CATEGORICAL:
            normalized[column], failures[column] = coerce_categorical(normalized[column])
        else:
            failures[column] = 0  # geometry kept opaque

    normalized = normalized[list(schema)].reset_index(drop=True)
    return NormalizedRecordSet(frame=normalized, schema=dict(schema), coercion_failures=failures)


def rescale_vegetation_index(values: pd.Series,
                             threshold: float = 1000,
                             divisor: float = 10000) -> pd.Series:
    """
    Undo MODIS integer scaling.

    MODIS EVI/NDVI are delivered as integers multiplied by 10000. When the
    largest magnitude in the set exceeds ``threshold`` every value is
    divided by ``divisor``; sets already in index units are left unchanged.

    Example:
        >>> rescale_vegetation_index(pd.Series([6500.0])).tolist()
        [0.65]
    """
    magnitude = values.abs().max()
    if pd.notna(magnitude) and magnitude > threshold:
        return values / divisor
    return values


class XarrayGridReader:
    """Describe a NetCDF grid with xarray without loading its values."""

    def describe(self, path: Union[str, Path], variable: str) -> GridHandle:
        path = Path(path)
        with xr.open_dataset(path) as dataset:
            if variable not in dataset.data_vars:
                raise EmptyDataset(
                    f"Variable {variable} not found in {path.name}",
                    {'path': str(path), 'variables': list(dataset.data_vars)}
                )

            data = dataset[variable]
            dimensions = {str(name): int(size) for name, size in data.sizes.items()}
            if not dimensions or any(size == 0 for size in dimensions.values()):
                raise EmptyDataset(f"Variable {variable} in {path.name} is empty",
                                   {'path': str(path), 'dimensions': dimensions})

            time_range = None
            if 'time' in dataset.coords and dataset.sizes.get('time', 0) > 0:
                times = pd.to_datetime(dataset['time'].values)
                time_range = (times.min().date(), times.max().date())

            attributes = dict(dataset.attrs)

        return GridHandle(path=path, variable=variable, dimensions=dimensions,
                          time_range=time_range, attributes=attributes)


class GeoPandasShapefileReader:
    """Read a shapefile (with its sidecar files) into a GeoDataFrame."""

    def read(self, path: Union[str, Path]):
        import geopandas as gpd

        return gpd.read_file(path)


class SchemaNormalizer:
    """
    Convert raw provider payloads into typed record sets.

    Format readers for gridded files and shapefiles are injected so the
    normalizer depends only on their narrow decode contract.
    """

    def __init__(self,
                 config: Optional[ForestDataConfig] = None,
                 grid_reader=None,
                 shapefile_reader=None):
        self.config = config or ForestDataConfig()
        self.grid_reader = grid_reader or XarrayGridReader()
        self.shapefile_reader = shapefile_reader or GeoPandasShapefileReader()
        self.logger = logging.getLogger(self.__class__.__name__)

        self._normalizers = {
            Provider.CRU: self._normalize_cru,
            Provider.GBIF: self._normalize_gbif,
            Provider.MODIS: self._normalize_modis,
            Provider.FAO: self._normalize_fao,
            Provider.EFFIS: self._normalize_effis,
        }

    def normalize(self,
                  payloads: Union[RawPayload, Sequence[RawPayload]],
                  provider: Union[str, Provider],
                  **options) -> Union[NormalizedRecordSet, GridHandle]:
        """
        Normalize one or more payloads of a single provider.

        Args:
            payloads: A payload, or the pages of a paged response
            provider: Provider whose schema applies
            **options: ``variable`` for CRU grids; ``constants`` (column -> value)
                added to every MODIS row

        Returns:
            NormalizedRecordSet, or GridHandle for CRU

        Raises:
            EmptyDataset: Zero parseable records
        """
        if isinstance(payloads, RawPayload):
            payloads = [payloads]
        provider = Provider.parse(provider)
        return self._normalizers[provider](list(payloads), **options)

    def _normalize_cru(self, payloads: List[RawPayload], variable: str = None, **_) -> GridHandle:
        if not payloads or payloads[0].path is None:
            raise EmptyDataset("No CRU grid file to describe")
        path = payloads[0].path
        with error_context("reading NetCDF grid", error_class=ExtractionError, path=str(path)):
            handle = self.grid_reader.describe(path, variable)
        self.logger.info(f"Described {handle.variable} grid with dimensions {handle.dimensions}")
        return handle

    def _normalize_gbif(self, payloads: List[RawPayload], **_) -> NormalizedRecordSet:
        rows: List[Dict[str, Any]] = []
        for payload in payloads:
            body = payload.json_object()
            rows.extend(row for row in body.get('results') or [] if isinstance(row, dict))

        frame = pd.DataFrame(rows)
        if 'eventDate' in frame.columns:
            # Interval dates ("2019-05-01/2019-05-10") keep their start
            frame['eventDate'] = frame['eventDate'].map(
                lambda value: value.split('/')[0] if isinstance(value, str) else value
            )
        return build_record_set(frame, GBIF_SCHEMA, source='GBIF occurrence search')

    def _normalize_modis(self, payloads: List[RawPayload],
                         constants: Optional[Dict[str, Any]] = None, **_) -> NormalizedRecordSet:
        modis = self.config.get_provider_config('modis')
        constants = constants or {}

        rows = []
        for payload in payloads:
            for entry in payload.json_object().get('subset') or []:
                if not isinstance(entry, dict):
                    continue
                calendar_date = entry.get('calendar_date') or self._calendar_from_modis(entry.get('modis_date'))
                for pixel, value in enumerate(entry.get('data') or [], start=1):
                    rows.append({
                        **constants,
                        'band': entry.get('band', constants.get('band')),
                        'modis_date': entry.get('modis_date'),
                        'date': calendar_date,
                        'pixel': pixel,
                        'value': value,
                    })

        record_set = build_record_set(pd.DataFrame(rows), MODIS_SCHEMA, source='MODIS subset')
        record_set.frame['value'] = rescale_vegetation_index(
            record_set.frame['value'],
            threshold=modis.get('rescale_threshold', 1000),
            divisor=modis.get('scale_divisor', 10000),
        )
        return record_set

    @staticmethod
    def _calendar_from_modis(modis_date: Optional[str]) -> Optional[str]:
        if not modis_date:
            return None
        try:
            return parse_modis_date(modis_date).isoformat()
        except ValueError:
            return modis_date  # left for date coercion to count

    def _normalize_fao(self, payloads: List[RawPayload], **_) -> NormalizedRecordSet:
        fao = self.config.get_provider_config('fao')
        payload = payloads[0]

        try:
            frame = pd.read_csv(payload.path, dtype=str, encoding=fao.get('encoding', 'latin-1'))
        except pd.errors.EmptyDataError:
            frame = pd.DataFrame()
        except pd.errors.ParserError as e:
            raise EmptyDataset(f"Could not parse FAO CSV {payload.path}: {e}",
                                  {'path': str(payload.path)}) from e

        schema = {
            column: NUMERIC if FAO_NUMERIC_COLUMN.search(column) else CATEGORICAL
            for column in frame.columns
        }
        return build_record_set(frame, schema, source='FAO forestry CSV')

    def _normalize_effis(self, payloads: List[RawPayload], **_) -> NormalizedRecordSet:
        effis = self.config.get_provider_config('effis')
        date_format = effis.get('date_format', '%Y-%m-%d %H:%M:%S')

        path = payloads[0].path
        # A corrupt file or missing sidecar (.dbf, .shx) leaves nothing to read
        with error_context("reading EFFIS shapefile", error_class=EmptyDataset, path=str(path)):
            fires = self.shapefile_reader.read(path)
        self.logger.info(f"Loaded {len(fires)} fire records")

        schema = dict(EFFIS_SCHEMA)
        geometry = getattr(fires, 'geometry', None)
        geometry_column = geometry.name if geometry is not None else None
        for column in fires.columns:
            if column == geometry_column:
                continue
            schema.setdefault(column, CATEGORICAL)
        if geometry_column:
            schema[geometry_column] = GEOMETRY

        return build_record_set(
            fires,
            schema,
            date_formats={'FIREDATE': date_format, 'LASTUPDATE': date_format},
            source='EFFIS shapefile',
        )

