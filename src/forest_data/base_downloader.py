#!/usr/bin/env python3
"""
Base Provider Adapter for Forest Data Sources

Common acquisition workflow shared by every provider adapter:

    request -> query -> fetch/extract -> normalize -> filter -> result

Each adapter supplies the provider-specific collection step and its
default filters; the base class handles request validation, provenance
assembly and processing logs. Adapters are thin compositions of the
transport, query builder, schema normalizer and filter chain, all of
which can be injected.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union

from .acquisition_types import (
    AcquisitionRequest,
    AcquisitionResult,
    FilterSpec,
    GridHandle,
    NormalizedRecordSet,
    Provenance,
    Provider,
    RawPayload,
    ResolvedQuery,
)
from .config_manager import ForestDataConfig
from .filter_chain import FilterChain
from .logging_utils import ForestDataError, InvalidRequest, ProcessingLogger
from .query_builder import QueryBuilder
from .schema_normalizer import SchemaNormalizer
from .transport import Transport


class BaseDownloader(ABC):
    """
    Abstract base class for all provider adapters.

    Subclasses set ``provider`` and implement ``_collect``; they may
    override ``default_filters`` and ``_check_local_sources``.
    """

    provider: Provider = None

    def __init__(self,
                 transport: Optional[Transport] = None,
                 config: Optional[ForestDataConfig] = None,
                 query_builder: Optional[QueryBuilder] = None,
                 normalizer: Optional[SchemaNormalizer] = None,
                 filter_chain: Optional[FilterChain] = None,
                 grid_reader=None,
                 shapefile_reader=None):
        """
        Args:
            transport: HTTP transport (a default Transport if omitted)
            config: Configuration; defaults plus environment if omitted
            query_builder: Query builder (built from config if omitted)
            normalizer: Schema normalizer (built from config and readers if omitted)
            filter_chain: Filter chain
            grid_reader: Reader with ``describe(path, variable)`` for gridded files
            shapefile_reader: Reader with ``read(path)`` for shapefiles
        """
        self.config = config or ForestDataConfig()
        self.transport = transport or Transport(self.config)
        self.query_builder = query_builder or QueryBuilder(self.config)
        self.normalizer = normalizer or SchemaNormalizer(self.config,
                                                         grid_reader=grid_reader,
                                                         shapefile_reader=shapefile_reader)

        self.logger = logging.getLogger(self.__class__.__name__)
        self.processing_logger = ProcessingLogger(self.logger)
        self.filter_chain = filter_chain or FilterChain(self.processing_logger)

    @property
    def provider_config(self) -> Dict[str, Any]:
        return self.config.get_provider_config(self.provider.value)

    def acquire(self, parameters: Union[AcquisitionRequest, Mapping[str, Any]]) -> AcquisitionResult:
        """
        Run one complete acquisition.

        Args:
            parameters: Provider parameters (or a prepared AcquisitionRequest).
                An optional ``filters`` entry holds caller FilterSpecs, applied
                after the provider's default filters.

        Returns:
            AcquisitionResult: Normalized data plus provenance

        Raises:
            InvalidRequest, NetworkError, ExtractionError, EmptyDataset,
            MissingLocalFile: Terminal failures; no partial result is returned
        """
        request = self._as_request(parameters)
        self.processing_logger.log_acquisition_start(self.provider.value, dict(request.parameters))
        provenance = Provenance(request=request)

        try:
            self._check_local_sources(request)
            query = self.query_builder.build(request)
            provenance.query = query

            data = self._collect(request, query, provenance)

            if isinstance(data, GridHandle):
                result = AcquisitionResult(data=data, provenance=provenance)
            else:
                provenance.normalized_count = len(data)
                provenance.coercion_failures = {
                    column: count for column, count in data.coercion_failures.items() if count
                }
                self.processing_logger.log_normalization(len(data), data.coercion_failures)

                specs = self.default_filters(request) + self.caller_filters(request)
                result = self.filter_chain.apply(data, specs, provenance)

        except ForestDataError as e:
            self.processing_logger.log_processing_error(type(e).__name__, str(e), e.context)
            raise

        self.processing_logger.log_acquisition_complete(provenance.final_count)
        return result

    def _as_request(self, parameters) -> AcquisitionRequest:
        if isinstance(parameters, AcquisitionRequest):
            if parameters.provider is not self.provider:
                raise InvalidRequest(
                    f"{self.__class__.__name__} cannot serve {parameters.provider.value} requests",
                    {'expected': self.provider.value, 'received': parameters.provider.value}
                )
            return parameters
        return AcquisitionRequest(self.provider, dict(parameters or {}))

    def _check_local_sources(self, request: AcquisitionRequest) -> None:
        """Hook run before any other work; adapters reading local files override it."""

    @abstractmethod
    def _collect(self,
                 request: AcquisitionRequest,
                 query: ResolvedQuery,
                 provenance: Provenance) -> Union[NormalizedRecordSet, GridHandle]:
        """
        Fetch, extract and normalize the provider's data.

        Implementations record every payload and extraction in ``provenance``
        through ``_record_payload`` and ``_record_extraction``.
        """
        pass

    def default_filters(self, request: AcquisitionRequest) -> List[FilterSpec]:
        """Provider filters derived from request parameters."""
        return []

    def caller_filters(self, request: AcquisitionRequest) -> List[FilterSpec]:
        filters = request.get('filters', [])
        if isinstance(filters, (FilterSpec, Mapping)):
            filters = [filters]
        return [FilterSpec.coerce(spec) for spec in filters]

    def _record_payload(self, provenance: Provenance, payload: RawPayload) -> None:
        provenance.source_urls.append(payload.origin_url)
        provenance.byte_count += payload.byte_count
        self.processing_logger.log_data_download(payload.origin_url, payload.byte_count)

    def _record_extraction(self, provenance: Provenance, payload: RawPayload) -> None:
        provenance.extracted_files.append(str(payload.path))
        if payload.ambiguous:
            provenance.ambiguous_extraction = True
            self.logger.warning(
                f"Extraction chose {payload.path} among candidates {payload.candidates}"
            )
