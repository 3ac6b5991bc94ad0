"""
HTTP Transport and Archive Extraction

Fetches provider payloads over HTTP and unwraps gzip/zip archives on the
local filesystem. The transport knows nothing about provider semantics.

Every fetch is a single attempt: there are no automatic retries, and a
failed fetch never leaves a partial file behind. Retry policy belongs to
the caller.
"""

import gzip
import io
import logging
import shutil
import zipfile
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import requests

from .acquisition_types import RawPayload
from .config_manager import ForestDataConfig
from .logging_utils import ExtractionError, NetworkError, error_context


class ArchiveKind(str, Enum):
    GZIP = 'gzip'
    ZIP = 'zip'


# Advisory format -> Accept header
ACCEPT_HEADERS = {
    'json': 'application/json',
    'csv': 'text/csv',
    'zip': 'application/zip',
    'gzip': 'application/gzip',
}

SUFFIX_CONTENT_TYPES = {
    '.nc': 'netcdf',
    '.csv': 'csv',
    '.json': 'json',
    '.shp': 'shapefile',
    '.zip': 'zip',
    '.gz': 'gzip',
}


def content_type_for(path: Union[str, Path]) -> str:
    """Advisory content type derived from a file suffix."""
    return SUFFIX_CONTENT_TYPES.get(Path(path).suffix.lower(), 'binary')


class Transport:
    """
    Fetch payloads over HTTP and unwrap archives.

    Writes go to a caller-specified location; archives are never deleted
    by extraction (the caller decides retention).
    """

    def __init__(self, config: Optional[ForestDataConfig] = None):
        """
        Args:
            config: Configuration holding timeout, chunk size and user agent
        """
        transport_config = (config or ForestDataConfig()).get_transport_config()
        self.timeout = transport_config['timeout_seconds']
        self.chunk_size = transport_config['chunk_size']
        self.user_agent = transport_config['user_agent']
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch(self,
              url: str,
              expected_format: str = 'binary',
              params: Optional[Dict[str, Any]] = None,
              destination: Optional[Union[str, Path]] = None) -> RawPayload:
        """
        Fetch one payload.

        Args:
            url: Absolute URL to request
            expected_format: Advisory format ('json', 'csv', 'zip', 'gzip', ...),
                used for the Accept header and the recorded content type
            params: Query-string parameters
            destination: If given, the body is streamed to this file;
                otherwise it is kept in memory

        Returns:
            RawPayload: Payload with origin URL and byte count populated

        Raises:
            NetworkError: Unreachable host, timeout or non-2xx status
        """
        origin_url = requests.Request('GET', url, params=params).prepare().url
        headers = {
            'User-Agent': self.user_agent,
            'Accept': ACCEPT_HEADERS.get(expected_format, '*/*'),
        }

        self.logger.info(f"Fetching {origin_url}")

        try:
            response = requests.get(url, params=params, headers=headers,
                                    timeout=self.timeout, stream=destination is not None)
        except requests.RequestException as e:
            raise NetworkError(f"Failed to reach {origin_url}: {e}", {'url': origin_url}) from e

        try:
            if not 200 <= response.status_code < 300:
                raise NetworkError(
                    f"HTTP {response.status_code} for {origin_url}",
                    {'url': origin_url, 'status_code': response.status_code}
                )

            if destination is None:
                content = response.content
                return RawPayload(origin_url=origin_url, content_type=expected_format,
                                  content=content, byte_count=len(content))

            output_path = Path(destination)
            byte_count = self._stream_to_file(response, output_path, origin_url)
            return RawPayload(origin_url=origin_url, content_type=expected_format,
                              path=output_path, byte_count=byte_count)
        finally:
            response.close()

    def _stream_to_file(self, response, output_path: Path, origin_url: str) -> int:
        """Stream a response body to disk; remove the partial file on failure."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        total_size = int(response.headers.get('content-length', 0) or 0)
        downloaded_size = 0
        next_report = 10 * 1024 * 1024

        try:
            with open(output_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
                        downloaded_size += len(chunk)

                        # Log progress for large files
                        if total_size > 0 and downloaded_size >= next_report:
                            progress = (downloaded_size / total_size) * 100
                            self.logger.info(f"Download progress: {progress:.1f}%")
                            next_report += 10 * 1024 * 1024
        except requests.RequestException as e:
            output_path.unlink(missing_ok=True)
            raise NetworkError(f"Download interrupted for {origin_url}: {e}",
                               {'url': origin_url, 'bytes_received': downloaded_size}) from e
        except OSError:
            output_path.unlink(missing_ok=True)
            raise

        self.logger.info(f"Download completed: {output_path} ({downloaded_size} bytes)")
        return downloaded_size

    def extract(self,
                payload: RawPayload,
                archive_kind: Union[str, ArchiveKind],
                expected_suffix: str = '',
                destination: Optional[Union[str, Path]] = None,
                member: Optional[str] = None) -> RawPayload:
        """
        Unwrap a gzip or zip archive.

        gzip archives decompress to a sibling file without the ``.gz``
        suffix. For zip archives the member matching ``member`` (or, by
        default, the first member ending in ``expected_suffix`` in lexical
        order) is extracted into ``destination`` or a sibling directory
        named after the archive. When several members qualify the payload is
        marked ambiguous.

        Args:
            payload: Archive payload (on disk or in memory)
            archive_kind: 'gzip' or 'zip'
            expected_suffix: Suffix the extracted file must carry (e.g. '.nc', '.csv')
            destination: Output directory (zip) or directory for the output file (gzip)
            member: Exact member name to extract from a zip archive

        Returns:
            RawPayload: Payload pointing at the extracted file

        Raises:
            ExtractionError: No matching member, missing member, unreadable archive
        """
        kind = ArchiveKind(archive_kind)
        if kind is ArchiveKind.GZIP:
            return self._extract_gzip(payload, expected_suffix, destination)
        return self._extract_zip(payload, expected_suffix, destination, member)

    def _extract_gzip(self, payload: RawPayload, expected_suffix: str,
                      destination: Optional[Union[str, Path]]) -> RawPayload:
        if payload.path is None:
            raise ExtractionError("gzip extraction needs an archive on disk",
                                  {'origin_url': payload.origin_url})

        archive_path = Path(payload.path)
        name = archive_path.name[:-3] if archive_path.name.endswith('.gz') else f"{archive_path.name}.out"
        if expected_suffix and not name.endswith(expected_suffix):
            raise ExtractionError(
                f"Archive {archive_path.name} does not contain a {expected_suffix} file",
                {'archive': str(archive_path), 'expected_suffix': expected_suffix}
            )

        output_path = Path(destination) / name if destination else archive_path.with_name(name)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger.info(f"Decompressing {archive_path.name}")
        try:
            with error_context("decompressing gzip archive", error_class=ExtractionError,
                               archive=str(archive_path)):
                with gzip.open(archive_path, 'rb') as source, open(output_path, 'wb') as target:
                    shutil.copyfileobj(source, target)
        except ExtractionError:
            output_path.unlink(missing_ok=True)
            raise

        return RawPayload(
            origin_url=payload.origin_url,
            content_type=content_type_for(output_path),
            path=output_path,
            byte_count=output_path.stat().st_size,
            candidates=[name],
        )

    def _extract_zip(self, payload: RawPayload, expected_suffix: str,
                     destination: Optional[Union[str, Path]], member: Optional[str]) -> RawPayload:
        if payload.path is not None:
            archive_path = Path(payload.path)
            source = archive_path
        else:
            archive_path = None
            source = io.BytesIO(payload.read_bytes())

        if destination is not None:
            target_dir = Path(destination)
        elif archive_path is not None:
            target_dir = archive_path.with_suffix('')
        else:
            raise ExtractionError("An in-memory zip archive needs an extraction destination",
                                  {'origin_url': payload.origin_url})

        with error_context("extracting zip archive", error_class=ExtractionError,
                           archive=str(archive_path or payload.origin_url)):
            with zipfile.ZipFile(source) as archive:
                candidates = sorted(
                    name for name in archive.namelist()
                    if not name.endswith('/') and name.lower().endswith(expected_suffix.lower())
                )

                if member is not None:
                    matches = [name for name in candidates
                               if name == member or Path(name).name == member]
                    if not matches:
                        raise ExtractionError(
                            f"Member {member} not found in archive",
                            {'member': member, 'candidates': candidates}
                        )
                    chosen, ambiguous = matches[0], False
                elif not candidates:
                    raise ExtractionError(
                        f"Archive contains no files ending in {expected_suffix or '(any suffix)'}",
                        {'expected_suffix': expected_suffix}
                    )
                else:
                    chosen, ambiguous = candidates[0], len(candidates) > 1

                if ambiguous:
                    self.logger.warning(
                        f"{len(candidates)} candidate files in archive, using {chosen}"
                    )

                target_dir.mkdir(parents=True, exist_ok=True)
                extracted_path = Path(archive.extract(chosen, path=target_dir))

        return RawPayload(
            origin_url=payload.origin_url,
            content_type=content_type_for(extracted_path),
            path=extracted_path,
            byte_count=extracted_path.stat().st_size,
            ambiguous=ambiguous,
            candidates=candidates,
        )
