#!/usr/bin/env python3
"""
Downloader Factory for Forest Data Providers

Maps each provider to its adapter class and offers a one-call
``acquire(provider, parameters)`` entry point. Every call builds a fresh
adapter; nothing is shared between acquisitions.
"""

import importlib.util
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from .acquisition_types import REQUIRED_PARAMETERS, AcquisitionResult, Provider
from .base_downloader import BaseDownloader
from .config_manager import ForestDataConfig
from .cru_downloader import CRUDownloader
from .effis_processor import EFFISProcessor
from .fao_downloader import FAODownloader
from .gbif_downloader import GBIFDownloader
from .modis_downloader import MODISDownloader
from .transport import Transport


class DownloaderFactory:
    """Factory for provider adapters."""

    # Registry of available downloaders
    DOWNLOADERS = {
        Provider.CRU: CRUDownloader,
        Provider.GBIF: GBIFDownloader,
        Provider.MODIS: MODISDownloader,
        Provider.FAO: FAODownloader,
        Provider.EFFIS: EFFISProcessor,
    }

    # Libraries behind each provider's default format readers
    DEPENDENCIES = {
        Provider.CRU: ['requests', 'xarray', 'netCDF4'],
        Provider.GBIF: ['requests', 'pandas'],
        Provider.MODIS: ['requests', 'pandas'],
        Provider.FAO: ['requests', 'pandas'],
        Provider.EFFIS: ['geopandas'],
    }

    @staticmethod
    def create_downloader(provider: Union[str, Provider],
                          transport: Optional[Transport] = None,
                          config: Optional[ForestDataConfig] = None,
                          **readers) -> BaseDownloader:
        """
        Create the adapter for a provider.

        Args:
            provider: Provider member or name ('CRU', 'gbif', ...)
            transport: Transport to inject
            config: Configuration to inject
            **readers: ``grid_reader``, ``shapefile_reader``, ``query_builder``,
                ``normalizer`` or ``filter_chain`` overrides

        Returns:
            BaseDownloader: Adapter instance

        Raises:
            InvalidRequest: If the provider is unknown
        """
        provider = Provider.parse(provider)
        downloader_class = DownloaderFactory.DOWNLOADERS[provider]
        downloader = downloader_class(transport=transport, config=config, **readers)
        logging.getLogger(__name__).debug(f"Created {provider.value} downloader")
        return downloader

    @staticmethod
    def check_downloader_dependencies(provider: Union[str, Provider]) -> List[str]:
        """Libraries a provider needs that are not installed."""
        provider = Provider.parse(provider)
        return [name for name in DownloaderFactory.DEPENDENCIES.get(provider, [])
                if importlib.util.find_spec(name) is None]

    @staticmethod
    def get_available_downloaders() -> Dict[str, Dict[str, Any]]:
        """
        Describe every provider adapter.

        Returns:
            dict: Provider name to adapter class, required parameters and
            dependency status
        """
        downloaders_info = {}

        for provider, downloader_class in DownloaderFactory.DOWNLOADERS.items():
            missing_deps = DownloaderFactory.check_downloader_dependencies(provider)
            downloaders_info[provider.value] = {
                'class': downloader_class.__name__,
                'required_parameters': list(REQUIRED_PARAMETERS[provider]),
                'dependencies': DownloaderFactory.DEPENDENCIES.get(provider, []),
                'missing_dependencies': missing_deps,
                'available': len(missing_deps) == 0,
            }

        return downloaders_info


_unmapped = [provider.value for provider in Provider if provider not in DownloaderFactory.DOWNLOADERS]
if _unmapped:
    raise ImportError(f"No downloader registered for providers: {_unmapped}")


def acquire(provider: Union[str, Provider],
            parameters: Mapping[str, Any],
            **kwargs) -> AcquisitionResult:
    """
    Acquire, normalize and filter one dataset.

    Example:
        >>> result = acquire('GBIF', {'scientificName': 'Fagus sylvatica', 'country': 'SI'})
        >>> result.provenance.final_count
    """
    return DownloaderFactory.create_downloader(provider, **kwargs).acquire(parameters)
