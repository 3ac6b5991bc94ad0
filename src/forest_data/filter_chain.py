"""
Filter Chain for Normalized Record Sets

Applies an ordered sequence of named predicates to a record set. Each
stage sees only the records that survived the previous stages, and the
surviving count after every stage is recorded in provenance, even when a
stage removes everything. An empty result is a valid outcome, not an error.

Predicates are conjunctive: reordering the chain changes the per-stage
counts but never the final set.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from .acquisition_types import (
    AcquisitionResult,
    FilterSpec,
    FilterStage,
    NormalizedRecordSet,
    Provenance,
    canonical_parameter_name,
    is_missing,
)
from .logging_utils import InvalidRequest, ProcessingLogger
from .time_utils import to_timestamp_bounds


def by_category(frame: pd.DataFrame, column: str, value: Any) -> pd.Series:
    """
    Keep records whose value equals ``value`` (or is one of a list of values).

    Numeric columns are compared as numbers, so 1861 and '1861' both match a
    stored 1861.0. Other columns are compared as text.
    """
    values = list(value) if isinstance(value, (list, tuple, set)) else [value]
    series = frame[column]

    if pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series):
        # Values that are not numbers cannot match a numeric column
        wanted_numbers = pd.to_numeric(pd.Series(values, dtype=object), errors='coerce').dropna()
        return series.isin(wanted_numbers.tolist()).astype(bool)

    wanted = {str(item) for item in values}
    return series.map(lambda cell: not is_missing(cell) and str(cell) in wanted).astype(bool)


def by_date_range(frame: pd.DataFrame, column: str, start: Any = None, end: Any = None) -> pd.Series:
    """
    Keep records dated within [start, end].

    Either bound may be omitted (unbounded on that side). A date-only end
    bound covers its whole day. Missing dates are excluded once a bound
    is set.
    """
    try:
        start_ts, end_ts = to_timestamp_bounds(start, end)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid date bounds for {column}: start={start!r}, end={end!r}",
                             {'column': column, 'start': start, 'end': end})

    values = frame[column]
    if not pd.api.types.is_datetime64_any_dtype(values):
        values = pd.to_datetime(values, errors='coerce')

    mask = pd.Series(True, index=frame.index)
    if start_ts is not None:
        mask &= values.notna() & (values >= start_ts)
    if end_ts is not None:
        mask &= values.notna() & (values <= end_ts)
    return mask


def by_minimum(frame: pd.DataFrame, column: str, threshold: Any) -> pd.Series:
    """Keep records with a value >= threshold. Missing values are excluded."""
    try:
        threshold = float(threshold)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Threshold for {column} must be numeric, got: {threshold!r}",
                             {'column': column, 'threshold': threshold})
    values = pd.to_numeric(frame[column], errors='coerce')
    return (values >= threshold).fillna(False).astype(bool)


def by_keyword(frame: pd.DataFrame,
               column: str,
               keywords: Union[str, Iterable[str]],
               case_insensitive: bool = True,
               keep_if_null: bool = True) -> pd.Series:
    """
    Keep records whose value contains any of the keywords.

    Records with a null value are kept when ``keep_if_null`` is set:
    absent metadata does not exclude a record.
    """
    if isinstance(keywords, str):
        keywords = [keywords]
    keywords = [str(keyword) for keyword in keywords if str(keyword)]
    if not keywords:
        raise InvalidRequest(f"byKeyword on {column} needs at least one keyword", {'column': column})

    pattern = re.compile('|'.join(re.escape(keyword) for keyword in keywords),
                         re.IGNORECASE if case_insensitive else 0)

    def keep(cell):
        if is_missing(cell):
            return keep_if_null
        return pattern.search(str(cell)) is not None

    return frame[column].map(keep).astype(bool)


PREDICATES: Dict[str, Callable[..., pd.Series]] = {
    'byCategory': by_category,
    'byDateRange': by_date_range,
    'byMinimum': by_minimum,
    'byKeyword': by_keyword,
}

_PREDICATE_LOOKUP = {name.lower(): func for name, func in PREDICATES.items()}


def resolve_predicate(name: str) -> Callable[..., pd.Series]:
    """Find a predicate by name (``byCategory`` or ``by_category``)."""
    predicate = _PREDICATE_LOOKUP.get(str(name).replace('_', '').lower())
    if predicate is None:
        raise InvalidRequest(f"Unknown filter: {name}. Available: {list(PREDICATES)}",
                             {'filter': name})
    return predicate


class FilterChain:
    """
    Ordered reduction of a record set through named predicates.

    No predicate mutates its input; each stage produces a new record set.
    """

    def __init__(self, processing_logger: Optional[ProcessingLogger] = None):
        self.processing_logger = processing_logger or ProcessingLogger(logging.getLogger(__name__))

    def apply(self,
              record_set: NormalizedRecordSet,
              specs: Sequence[Union[FilterSpec, Dict[str, Any]]],
              provenance: Optional[Provenance] = None) -> AcquisitionResult:
        """
        Apply filters in declaration order.

        Args:
            record_set: Normalized input records
            specs: FilterSpecs (or ``{"name", "parameters"}`` mappings)
            provenance: Provenance to complete; a new one is created if omitted

        Returns:
            AcquisitionResult: Surviving records and per-stage counts

        Raises:
            InvalidRequest: Unknown predicate, unknown column or bad parameters
        """
        provenance = provenance or Provenance()
        if provenance.normalized_count is None:
            provenance.normalized_count = len(record_set)

        stages: List[FilterStage] = []
        current = record_set

        for spec in specs:
            spec = FilterSpec.coerce(spec)
            predicate = resolve_predicate(spec.name)
            parameters = {canonical_parameter_name(key): value for key, value in spec.parameters.items()}

            column = parameters.get('column')
            if column not in current.schema:
                raise InvalidRequest(f"Filter {spec.name} refers to unknown column: {column}",
                                     {'filter': spec.name, 'column': column,
                                      'columns': current.columns})

            try:
                mask = predicate(current.frame, **parameters)
            except TypeError as e:
                raise InvalidRequest(f"Invalid parameters for filter {spec.name}: {e}",
                                     {'filter': spec.name, 'parameters': dict(spec.parameters)}) from e

            survivors = current.subset(mask)
            stages.append(FilterStage(name=spec.name, parameters=dict(spec.parameters),
                                      input_count=len(current), output_count=len(survivors)))
            self.processing_logger.log_filter_stage(spec.name, len(current), len(survivors))
            current = survivors

        provenance.stage_counts = stages
        return AcquisitionResult(data=current, provenance=provenance)
