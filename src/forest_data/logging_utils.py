"""
Error Handling and Logging Infrastructure for Forest Data Acquisition

This module provides standardized logging and the error taxonomy shared by
every acquisition pipeline. It includes acquisition progress tracking,
error context management, and structured logging of filter-stage counts.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, Type
from contextlib import contextmanager


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_forest_data_logging(log_level: str = "INFO",
                              log_file: Optional[str] = None,
                              console_output: bool = True) -> logging.Logger:
    """
    Setup standardized logging for forest data acquisition.

    Args:
        log_level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
        log_file: Optional path to log file
        console_output: Whether to output logs to console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger('forest_data')
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear any existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, log_level.upper()))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)  # File logs capture everything
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


class ProcessingLogger:
    """
    Specialized logger for tracking acquisition progress.

    Logs the stages of one acquisition (start, fetch, normalization, each
    filter stage, completion) and keeps simple counters for the session.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize processing logger.

        Args:
            logger: Logger instance to use. If None, uses the package logger.
        """
        self.logger = logger or logging.getLogger('forest_data')
        self.processing_start_time = None
        self.current_provider = None
        self.processing_stats = {
            'payloads_fetched': 0,
            'bytes_fetched': 0,
            'records_normalized': 0,
            'filter_stages_run': 0,
            'errors_encountered': 0,
        }

    def log_acquisition_start(self, provider: str, parameters: Dict[str, Any]) -> None:
        """
        Log start of an acquisition.

        Args:
            provider: Provider name (e.g., 'CRU', 'GBIF')
            parameters: Request parameters dictionary
        """
        self.processing_start_time = datetime.now()
        self.current_provider = provider

        self.logger.info(f"Starting {provider} acquisition")
        for param_name, param_value in parameters.items():
            self.logger.debug(f"  {param_name}: {param_value}")

    def log_data_download(self, source_url: str, byte_count: int) -> None:
        """Log a completed fetch."""
        self.processing_stats['payloads_fetched'] += 1
        self.processing_stats['bytes_fetched'] += byte_count
        self.logger.info(f"Fetched {byte_count} bytes from {source_url}")

    def log_normalization(self, record_count: int, coercion_failures: Dict[str, int]) -> None:
        """
        Log the outcome of schema normalization.

        Args:
            record_count: Number of normalized records
            coercion_failures: Per-column count of cells that could not be coerced
        """
        self.processing_stats['records_normalized'] += record_count
        self.logger.info(f"Normalized {record_count} records")

        for column, failures in coercion_failures.items():
            if failures:
                self.logger.warning(f"  {column}: {failures} values could not be coerced")

    def log_filter_stage(self, stage_name: str, input_count: int, output_count: int) -> None:
        """Log surviving record count after one filter stage."""
        self.processing_stats['filter_stages_run'] += 1
        self.logger.info(f"Filter {stage_name}: {input_count} -> {output_count} records")

    def log_processing_error(self, error_type: str, error_details: str, context: Optional[Dict] = None) -> None:
        """
        Log processing errors with context.

        Args:
            error_type: Type/category of error
            error_details: Detailed error description
            context: Optional context dictionary with additional information
        """
        self.processing_stats['errors_encountered'] += 1

        self.logger.error(f"Processing error ({error_type}): {error_details}")

        if context:
            self.logger.error("Error context:")
            for key, value in context.items():
                self.logger.error(f"  {key}: {value}")

    def log_acquisition_complete(self, final_count: Optional[int] = None) -> None:
        """
        Log completion of an acquisition.

        Args:
            final_count: Records surviving the filter chain, if tabular
        """
        if self.processing_start_time:
            duration = datetime.now() - self.processing_start_time
            self.logger.info(f"{self.current_provider} acquisition completed in {duration}")
        else:
            self.logger.info("Acquisition completed")

        if final_count is not None:
            self.logger.info(f"  Records returned: {final_count}")

    def get_processing_summary(self) -> Dict[str, Any]:
        """
        Get summary of the current acquisition session.

        Returns:
            Dictionary with processing summary information
        """
        summary = {
            'provider': self.current_provider,
            'start_time': self.processing_start_time.isoformat() if self.processing_start_time else None,
            'current_time': datetime.now().isoformat(),
            'processing_stats': self.processing_stats.copy()
        }

        if self.processing_start_time:
            duration = datetime.now() - self.processing_start_time
            summary['elapsed_time'] = str(duration)

        return summary


class ForestDataError(Exception):
    """Base exception class for acquisition errors"""

    def __init__(self, message: str, context: Optional[Dict] = None):
        """
        Initialize acquisition error.

        Args:
            message: Error message
            context: Optional context dictionary with additional information
        """
        super().__init__(message)
        self.context = context or {}
        self.timestamp = datetime.now()

    def get_full_error_info(self) -> Dict[str, Any]:
        """Get complete error information including context"""
        return {
            'error_type': self.__class__.__name__,
            'message': str(self),
            'timestamp': self.timestamp.isoformat(),
            'context': self.context
        }


class InvalidRequest(ForestDataError):
    """Malformed or missing request parameters"""
    pass


class NetworkError(ForestDataError):
    """Fetch failed: unreachable host, timeout or non-2xx status"""
    pass


class ExtractionError(ForestDataError):
    """Archive missing expected content, or unreadable"""
    pass


class EmptyDataset(ForestDataError):
    """Zero parseable records after normalization"""
    pass


class MissingLocalFile(ForestDataError):
    """A caller-supplied local file does not exist"""
    pass


@contextmanager
def error_context(operation_name: str,
                  logger: Optional[ProcessingLogger] = None,
                  error_class: Type[ForestDataError] = ForestDataError,
                  **context_info):
    """
    Context manager for wrapping operations with error handling.

    Exceptions that are not already ``ForestDataError`` are re-raised as
    ``error_class`` carrying the operation context.

    Args:
        operation_name: Name of operation being performed
        logger: Optional ProcessingLogger instance
        error_class: Taxonomy class used for foreign exceptions
        **context_info: Additional context information

    Example:
        with error_context("extracting archive", error_class=ExtractionError, path=path):
            unpack(path)
    """
    start_time = datetime.now()

    if logger:
        logger.logger.debug(f"Starting operation: {operation_name}")

    try:
        yield
        duration = datetime.now() - start_time

        if logger:
            logger.logger.debug(f"Completed operation: {operation_name} (duration: {duration})")

    except Exception as e:
        duration = datetime.now() - start_time
        error_context_dict = {
            'operation': operation_name,
            'duration': str(duration),
            **context_info
        }

        if logger:
            logger.log_processing_error(
                error_type=type(e).__name__,
                error_details=str(e),
                context=error_context_dict
            )

        if not isinstance(e, ForestDataError):
            raise error_class(f"{operation_name} failed: {e}", error_context_dict) from e

        # Keep the original taxonomy class, extend its context
        for key, value in error_context_dict.items():
            e.context.setdefault(key, value)
        raise
