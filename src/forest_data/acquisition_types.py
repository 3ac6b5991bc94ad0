"""
Data Model for Forest Data Acquisition

Typed containers passed between the acquisition stages: the request, the
resolved query, the raw payload, the normalized record set, filter
specifications and the final result with its provenance.

Every object here is created per acquisition call and never retained by
the package; there is no catalog or cache.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import json

import pandas as pd

from .logging_utils import EmptyDataset, InvalidRequest, error_context


# Explicit marker for values that could not be resolved
MISSING = None


class Provider(str, Enum):
    """Closed set of supported data providers."""

    CRU = 'CRU'
    GBIF = 'GBIF'
    MODIS = 'MODIS'
    FAO = 'FAO'
    EFFIS = 'EFFIS'

    @classmethod
    def parse(cls, value: Union[str, 'Provider']) -> 'Provider':
        """Resolve a provider from an enum member or a case-insensitive name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidRequest(
                f"Unknown provider: {value}. Available: {[p.value for p in cls]}",
                {'provider': value}
            )


# Parameters that must be present for each provider
REQUIRED_PARAMETERS = {
    Provider.CRU: ('variable',),
    Provider.GBIF: ('scientific_name',),
    Provider.MODIS: ('lat', 'lon'),
    Provider.FAO: (),
    Provider.EFFIS: ('shapefile_path',),
}

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])([A-Z])')


def canonical_parameter_name(name: str) -> str:
    """Convert ``scientificName`` style keys to ``scientific_name``."""
    return _CAMEL_BOUNDARY.sub(r'_\1', name).lower()


@dataclass(frozen=True)
class AcquisitionRequest:
    """
    A provider plus its parameters, validated and read-only once built.

    Parameter keys are canonicalised to snake_case, so ``scientificName``
    and ``scientific_name`` are the same parameter.
    """

    provider: Provider
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        provider = Provider.parse(self.provider)
        parameters = {
            canonical_parameter_name(key): value
            for key, value in dict(self.parameters or {}).items()
        }

        missing = [key for key in REQUIRED_PARAMETERS[provider] if parameters.get(key) is None]
        if missing:
            raise InvalidRequest(
                f"Missing required parameters for {provider.value}: {missing}",
                {'provider': provider.value, 'missing': missing}
            )

        object.__setattr__(self, 'provider', provider)
        object.__setattr__(self, 'parameters', MappingProxyType(parameters))

    def get(self, key: str, default: Any = None) -> Any:
        value = self.parameters.get(canonical_parameter_name(key))
        return default if value is None else value


@dataclass(frozen=True)
class DirectQuery:
    """Fully resolved download URL."""

    url: str
    filename: str


@dataclass(frozen=True)
class StructuredQuery:
    """Structured request against a provider REST service."""

    endpoint: str
    params: Tuple[Tuple[str, Any], ...]
    record_cap: Optional[int] = None
    page_size: Optional[int] = None
    site_id: Optional[str] = None
    catalog_endpoint: Optional[str] = None

    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)


@dataclass(frozen=True)
class LocalQuery:
    """Caller-supplied local file; never fetched."""

    path: Path


ResolvedQuery = Union[DirectQuery, StructuredQuery, LocalQuery]


@dataclass
class RawPayload:
    """
    Bytes (in memory or on disk) as delivered by the transport.

    Attributes:
        origin_url: URL (or local path) the payload came from
        content_type: Advisory format label ('json', 'csv', 'netcdf', 'gzip', 'zip', ...)
        content: In-memory body, when the payload was not written to disk
        path: Local file holding the payload, when written to disk
        byte_count: Size of the payload in bytes
        ambiguous: True when extraction had to choose between several candidates
        candidates: Candidate member names considered during extraction
    """

    origin_url: str
    content_type: str
    content: Optional[bytes] = None
    path: Optional[Path] = None
    byte_count: int = 0
    ambiguous: bool = False
    candidates: List[str] = field(default_factory=list)

    def read_bytes(self) -> bytes:
        if self.content is not None:
            return self.content
        return Path(self.path).read_bytes()

    def json(self) -> Any:
        with error_context("decoding JSON payload", error_class=EmptyDataset, origin_url=self.origin_url):
            return json.loads(self.read_bytes().decode('utf-8'))

    def json_object(self) -> Dict[str, Any]:
        """Decoded body, which must be a JSON object."""
        body = self.json()
        if not isinstance(body, dict):
            raise EmptyDataset(f"Expected a JSON object from {self.origin_url}, got {type(body).__name__}",
                               {'origin_url': self.origin_url})
        return body


class ColumnType(str, Enum):
    NUMERIC = 'numeric'
    DATE = 'date'
    CATEGORICAL = 'categorical'
    GEOMETRY = 'geometry'


def is_missing(value: Any) -> bool:
    """True for None, NaN, NaT and pandas NA scalars."""
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, set)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


@dataclass
class NormalizedRecordSet:
    """
    Ordered records over a fixed, typed column schema.

    The records live in a pandas DataFrame (a GeoDataFrame when a geometry
    column is declared). Every declared column is present on every record;
    values that could not be resolved are missing (NaN/NaT in the frame,
    ``MISSING`` in record views).
    """

    frame: pd.DataFrame
    schema: Dict[str, ColumnType]
    coercion_failures: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def columns(self) -> List[str]:
        return list(self.schema)

    def column(self, name: str) -> List[Any]:
        """Values of one column, missing values as ``MISSING``."""
        return [MISSING if is_missing(value) else value for value in self.frame[name].tolist()]

    def records(self) -> List[Dict[str, Any]]:
        """Records as dictionaries keyed by every declared column."""
        rows = []
        for row in self.frame.to_dict(orient='records'):
            rows.append({
                name: MISSING if is_missing(row.get(name)) else row.get(name)
                for name in self.schema
            })
        return rows

    def subset(self, mask) -> 'NormalizedRecordSet':
        """New record set holding the rows selected by a boolean mask."""
        return NormalizedRecordSet(
            frame=self.frame.loc[mask].reset_index(drop=True),
            schema=dict(self.schema),
            coercion_failures=dict(self.coercion_failures),
        )


@dataclass
class GridHandle:
    """
    Typed description of a gridded file, without decoding the grid.

    Attributes:
        path: Local path of the decompressed file
        variable: Name of the data variable
        dimensions: Dimension name to size
        time_range: First and last time step, if the grid has a time axis
        attributes: Global attributes of the file
    """

    path: Path
    variable: str
    dimensions: Dict[str, int]
    time_range: Optional[Tuple[date, date]] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FilterSpec:
    """A named, parameterized predicate."""

    name: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'parameters', MappingProxyType(dict(self.parameters or {})))

    @classmethod
    def of(cls, name: str, **parameters) -> 'FilterSpec':
        return cls(name=name, parameters=parameters)

    @classmethod
    def coerce(cls, spec: Union['FilterSpec', Mapping[str, Any]]) -> 'FilterSpec':
        """Accept a FilterSpec or a ``{"name": ..., "parameters": {...}}`` mapping."""
        if isinstance(spec, cls):
            return spec
        if isinstance(spec, Mapping) and 'name' in spec:
            return cls(name=spec['name'], parameters=spec.get('parameters') or {})
        raise InvalidRequest(f"Invalid filter specification: {spec!r}", {'filter': repr(spec)})


@dataclass
class FilterStage:
    """Record counts around one filter stage."""

    name: str
    parameters: Dict[str, Any]
    input_count: int
    output_count: int


@dataclass
class Provenance:
    """How an AcquisitionResult was produced."""

    request: Optional[AcquisitionRequest] = None
    query: Optional[Any] = None
    source_urls: List[str] = field(default_factory=list)
    byte_count: int = 0
    extracted_files: List[str] = field(default_factory=list)
    ambiguous_extraction: bool = False
    normalized_count: Optional[int] = None
    stage_counts: List[FilterStage] = field(default_factory=list)
    coercion_failures: Dict[str, int] = field(default_factory=dict)

    @property
    def final_count(self) -> Optional[int]:
        if self.stage_counts:
            return self.stage_counts[-1].output_count
        return self.normalized_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.request.provider.value if self.request else None,
            'parameters': dict(self.request.parameters) if self.request else {},
            'source_urls': list(self.source_urls),
            'byte_count': self.byte_count,
            'extracted_files': list(self.extracted_files),
            'ambiguous_extraction': self.ambiguous_extraction,
            'normalized_count': self.normalized_count,
            'stage_counts': [
                {'name': s.name, 'input_count': s.input_count, 'output_count': s.output_count}
                for s in self.stage_counts
            ],
            'coercion_failures': dict(self.coercion_failures),
            'final_count': self.final_count,
        }


@dataclass
class AcquisitionResult:
    """Normalized data plus provenance. The caller owns disposal."""

    data: Union[NormalizedRecordSet, GridHandle]
    provenance: Provenance

    @property
    def records(self) -> List[Dict[str, Any]]:
        if isinstance(self.data, NormalizedRecordSet):
            return self.data.records()
        raise TypeError(f"{type(self.data).__name__} has no record view")

    @property
    def is_empty(self) -> bool:
        return isinstance(self.data, NormalizedRecordSet) and len(self.data) == 0
