"""
Tests for HTTP fetching and archive extraction.

HTTP calls are mocked; archives are built in temporary directories.
"""

import gzip
import zipfile
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

import sys
sys.path.append(str(Path(__file__).parent.parent / "src"))

from forest_data.acquisition_types import RawPayload
from forest_data.logging_utils import ExtractionError, NetworkError
from forest_data.transport import ArchiveKind, Transport, content_type_for


def make_response(status_code=200, content=b'', chunks=None):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    response.headers = {'content-length': str(len(content))}
    response.iter_content.return_value = chunks if chunks is not None else [content]
    return response


@pytest.fixture
def transport():
    return Transport()


@patch('forest_data.transport.requests.get')
def test_fetch_in_memory(mock_get, transport):
    mock_get.return_value = make_response(content=b'{"results": []}')

    payload = transport.fetch('https://api.gbif.org/v1/occurrence/search', 'json',
                              params={'scientificName': 'Abies alba', 'limit': 20})

    assert payload.content == b'{"results": []}'
    assert payload.byte_count == 15
    assert payload.content_type == 'json'
    assert 'scientificName=Abies+alba' in payload.origin_url
    assert mock_get.call_args.kwargs['headers']['Accept'] == 'application/json'


@patch('forest_data.transport.requests.get')
def test_fetch_to_file(mock_get, transport, tmp_path):
    mock_get.return_value = make_response(content=b'abcdef', chunks=[b'abc', b'def'])
    destination = tmp_path / 'downloads' / 'archive.zip'

    payload = transport.fetch('https://example.org/archive.zip', 'zip', destination=destination)

    assert payload.path == destination
    assert destination.read_bytes() == b'abcdef'
    assert payload.byte_count == 6
    assert mock_get.call_args.kwargs['stream'] is True


@patch('forest_data.transport.requests.get')
def test_non_2xx_status_is_network_error(mock_get, transport, tmp_path):
    mock_get.return_value = make_response(status_code=404)
    destination = tmp_path / 'missing.nc.gz'

    with pytest.raises(NetworkError) as exc_info:
        transport.fetch('https://example.org/missing.nc.gz', 'gzip', destination=destination)

    assert exc_info.value.context['status_code'] == 404
    assert not destination.exists()


@patch('forest_data.transport.requests.get')
def test_unreachable_host_is_network_error(mock_get, transport):
    mock_get.side_effect = requests.ConnectionError("Name or service not known")

    with pytest.raises(NetworkError):
        transport.fetch('https://unreachable.invalid/data.json', 'json')


@patch('forest_data.transport.requests.get')
def test_interrupted_download_leaves_no_partial_file(mock_get, transport, tmp_path):
    response = make_response(content=b'abcdef')
    response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("connection reset")
    mock_get.return_value = response
    destination = tmp_path / 'partial.zip'

    with pytest.raises(NetworkError):
        transport.fetch('https://example.org/partial.zip', 'zip', destination=destination)

    assert not destination.exists()


def test_gzip_extraction_keeps_archive(transport, tmp_path):
    archive = tmp_path / 'cru_ts4.08.2001.2010.tmp.dat.nc.gz'
    with gzip.open(archive, 'wb') as f:
        f.write(b'netcdf bytes')

    result = transport.extract(RawPayload(origin_url='https://example.org', content_type='gzip', path=archive),
                               ArchiveKind.GZIP, expected_suffix='.nc')

    assert result.path == tmp_path / 'cru_ts4.08.2001.2010.tmp.dat.nc'
    assert result.path.read_bytes() == b'netcdf bytes'
    assert result.content_type == 'netcdf'
    assert archive.exists()


def test_gzip_suffix_mismatch(transport, tmp_path):
    archive = tmp_path / 'table.csv.gz'
    with gzip.open(archive, 'wb') as f:
        f.write(b'a,b\n1,2\n')

    with pytest.raises(ExtractionError):
        transport.extract(RawPayload(origin_url='', content_type='gzip', path=archive), 'gzip', '.nc')


def test_corrupt_gzip(transport, tmp_path):
    archive = tmp_path / 'broken.nc.gz'
    archive.write_bytes(b'this is not gzip data')

    with pytest.raises(ExtractionError):
        transport.extract(RawPayload(origin_url='', content_type='gzip', path=archive), 'gzip', '.nc')

    assert not (tmp_path / 'broken.nc').exists()


@pytest.fixture
def fao_archive(tmp_path):
    archive = tmp_path / 'Forestry_E_All_Data.zip'
    with zipfile.ZipFile(archive, 'w') as zf:
        zf.writestr('Forestry_E_All_Data_NOFLAG.csv', 'Area,Item\n')
        zf.writestr('Forestry_E_All_Data.csv', 'Area,Item\nSlovenia,Roundwood\n')
        zf.writestr('README.txt', 'notes')
    return RawPayload(origin_url='https://example.org/Forestry_E_All_Data.zip', content_type='zip', path=archive)


def test_zip_ambiguous_candidates(transport, fao_archive, tmp_path):
    result = transport.extract(fao_archive, ArchiveKind.ZIP, expected_suffix='.csv')

    assert result.ambiguous is True
    assert result.candidates == ['Forestry_E_All_Data.csv', 'Forestry_E_All_Data_NOFLAG.csv']
    assert result.path == tmp_path / 'Forestry_E_All_Data' / 'Forestry_E_All_Data.csv'
    assert result.path.exists()
    assert fao_archive.path.exists()


def test_zip_explicit_member(transport, fao_archive):
    result = transport.extract(fao_archive, 'zip', expected_suffix='.csv',
                               member='Forestry_E_All_Data_NOFLAG.csv')

    assert result.ambiguous is False
    assert result.path.name == 'Forestry_E_All_Data_NOFLAG.csv'


def test_zip_missing_member(transport, fao_archive):
    with pytest.raises(ExtractionError):
        transport.extract(fao_archive, 'zip', expected_suffix='.csv', member='Forestry_Trade.csv')


def test_zip_without_matching_files(transport, fao_archive):
    with pytest.raises(ExtractionError):
        transport.extract(fao_archive, 'zip', expected_suffix='.nc')


def test_corrupt_zip(transport, tmp_path):
    archive = tmp_path / 'broken.zip'
    archive.write_bytes(b'not a zip')

    with pytest.raises(ExtractionError):
        transport.extract(RawPayload(origin_url='', content_type='zip', path=archive), 'zip', '.csv')


def test_content_type_for():
    assert content_type_for('grid.nc') == 'netcdf'
    assert content_type_for('table.CSV') == 'csv'
    assert content_type_for('unknown.bin') == 'binary'
