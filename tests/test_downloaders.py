#!/usr/bin/env python3
"""
Tests for the Provider Adapters

End-to-end acquisitions with a stubbed transport and stubbed format
readers: no network access, only temporary files.
"""

import json
import tempfile
import shutil
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import pandas as pd

import sys
sys.path.append(str(Path(__file__).parent.parent / "src"))

from forest_data.acquisition_types import GridHandle, Provider, RawPayload
from forest_data.config_manager import ForestDataConfig
from forest_data.cru_downloader import CRUDownloader
from forest_data.downloader_factory import DownloaderFactory, acquire
from forest_data.effis_processor import EFFISProcessor
from forest_data.fao_downloader import FAODownloader
from forest_data.gbif_downloader import GBIFDownloader
from forest_data.logging_utils import EmptyDataset, InvalidRequest, MissingLocalFile, NetworkError
from forest_data.modis_downloader import MODISDownloader
from forest_data.transport import ArchiveKind


def json_payload(body, url='https://example.org/api'):
    content = json.dumps(body).encode('utf-8')
    return RawPayload(origin_url=url, content_type='json', content=content, byte_count=len(content))


def occurrence(key, habitat):
    return {'key': key, 'scientificName': 'Fagus sylvatica L.', 'decimalLatitude': 46.0,
            'decimalLongitude': 14.5, 'countryCode': 'SI', 'basisOfRecord': 'HUMAN_OBSERVATION',
            'habitat': habitat, 'eventDate': '2021-06-01'}


class TestCRUDownloader(unittest.TestCase):
    """Gridded climate download, decompression and description."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.config = ForestDataConfig(overrides={'processing': {'download_directory': str(self.test_dir)}})

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_acquire_grid(self):
        archive = RawPayload(origin_url='https://crudata.example/tmp.nc.gz', content_type='gzip',
                             path=self.test_dir / 'cru_ts4.08.2001.2010.tmp.dat.nc.gz', byte_count=2048)
        extracted = RawPayload(origin_url=archive.origin_url, content_type='netcdf',
                               path=self.test_dir / 'cru_ts4.08.2001.2010.tmp.dat.nc', byte_count=8192)
        handle = GridHandle(path=extracted.path, variable='tmp',
                            dimensions={'time': 120, 'lat': 360, 'lon': 720})

        transport = MagicMock()
        transport.fetch.return_value = archive
        transport.extract.return_value = extracted
        grid_reader = MagicMock()
        grid_reader.describe.return_value = handle

        downloader = CRUDownloader(transport=transport, config=self.config, grid_reader=grid_reader)
        result = downloader.acquire({'variable': 'tmp', 'start_year': 2001, 'end_year': 2010})

        self.assertIs(result.data, handle)
        self.assertEqual(result.provenance.request.parameters['start_year'], 2001)
        self.assertEqual(result.provenance.request.parameters['end_year'], 2010)
        self.assertEqual(result.provenance.source_urls, [archive.origin_url])
        self.assertEqual(result.provenance.byte_count, 2048)
        self.assertEqual(result.provenance.extracted_files, [str(extracted.path)])

        fetch_kwargs = transport.fetch.call_args.kwargs
        self.assertTrue(transport.fetch.call_args.args[0].endswith(
            'cruts.2406270035.v4.08/tmp/cru_ts4.08.2001.2010.tmp.dat.nc.gz'))
        self.assertEqual(fetch_kwargs['destination'], self.test_dir / 'cru_ts4.08.2001.2010.tmp.dat.nc.gz')
        transport.extract.assert_called_once_with(archive, ArchiveKind.GZIP, expected_suffix='.nc')
        grid_reader.describe.assert_called_once_with(extracted.path, 'tmp')

    def test_records_view_unavailable_for_grids(self):
        transport = MagicMock()
        transport.fetch.return_value = RawPayload(origin_url='u', content_type='gzip',
                                                  path=self.test_dir / 'a.nc.gz')
        transport.extract.return_value = RawPayload(origin_url='u', content_type='netcdf',
                                                    path=self.test_dir / 'a.nc')
        grid_reader = MagicMock()
        grid_reader.describe.return_value = GridHandle(path=self.test_dir / 'a.nc', variable='pre',
                                                       dimensions={'time': 1})

        result = CRUDownloader(transport=transport, config=self.config,
                               grid_reader=grid_reader).acquire({'variable': 'pre'})

        with self.assertRaises(TypeError):
            result.records

    def test_invalid_variable_makes_no_request(self):
        transport = MagicMock()

        with self.assertRaises(InvalidRequest):
            CRUDownloader(transport=transport, config=self.config).acquire({'variable': 'snow'})

        transport.fetch.assert_not_called()

    def test_network_error_propagates(self):
        transport = MagicMock()
        transport.fetch.side_effect = NetworkError("HTTP 503", {'status_code': 503})

        with self.assertRaises(NetworkError):
            CRUDownloader(transport=transport, config=self.config).acquire({'variable': 'tmp'})

        transport.extract.assert_not_called()


class TestGBIFDownloader(unittest.TestCase):
    """Occurrence paging and the forest habitat filter."""

    def test_forest_filter(self):
        transport = MagicMock()
        transport.fetch.return_value = json_payload({
            'results': [occurrence(1, 'Mixed woodland'), occurrence(2, None), occurrence(3, 'grassland')],
            'endOfRecords': True,
        })

        result = GBIFDownloader(transport=transport).acquire({'scientificName': 'Fagus sylvatica'})

        self.assertEqual(len(result.data), 2)
        self.assertEqual(result.data.column('key'), ['1', '2'])
        self.assertEqual(result.provenance.normalized_count, 3)
        self.assertEqual(result.provenance.stage_counts[0].name, 'byKeyword')
        self.assertEqual(result.provenance.final_count, 2)

        params = transport.fetch.call_args.kwargs['params']
        self.assertEqual(params['limit'], 300)
        self.assertEqual(params['offset'], 0)
        self.assertEqual(transport.fetch.call_count, 1)

    def test_forest_filter_disabled(self):
        transport = MagicMock()
        transport.fetch.return_value = json_payload({
            'results': [occurrence(1, 'Mixed woodland'), occurrence(3, 'grassland')],
            'endOfRecords': True,
        })

        result = GBIFDownloader(transport=transport).acquire(
            {'scientificName': 'Fagus sylvatica', 'forestOnly': False})

        self.assertEqual(len(result.data), 2)
        self.assertEqual(result.provenance.stage_counts, [])

    def test_paging_respects_record_cap(self):
        config = ForestDataConfig(overrides={'providers': {'gbif': {'page_size': 2}}})
        transport = MagicMock()
        transport.fetch.side_effect = [
            json_payload({'results': [occurrence(1, None), occurrence(2, None)], 'endOfRecords': False}),
            json_payload({'results': [occurrence(3, None), occurrence(4, None)], 'endOfRecords': False}),
            json_payload({'results': [occurrence(5, None)], 'endOfRecords': False}),
        ]

        result = GBIFDownloader(transport=transport, config=config).acquire(
            {'scientificName': 'Fagus sylvatica', 'limit': 5})

        self.assertEqual(transport.fetch.call_count, 3)
        offsets = [call.kwargs['params']['offset'] for call in transport.fetch.call_args_list]
        limits = [call.kwargs['params']['limit'] for call in transport.fetch.call_args_list]
        self.assertEqual(offsets, [0, 2, 4])
        self.assertEqual(limits, [2, 2, 1])
        self.assertEqual(len(result.data), 5)
        self.assertEqual(len(result.provenance.source_urls), 3)

    def test_paging_stops_at_end_of_records(self):
        transport = MagicMock()
        transport.fetch.return_value = json_payload({
            'results': [occurrence(1, 'forest')], 'endOfRecords': True,
        })

        GBIFDownloader(transport=transport).acquire({'scientificName': 'Abies alba', 'limit': 1000})

        self.assertEqual(transport.fetch.call_count, 1)

    def test_caller_filters_run_after_defaults(self):
        transport = MagicMock()
        records = [occurrence(1, 'forest'), occurrence(2, 'beech forest')]
        records[1]['countryCode'] = 'HR'
        transport.fetch.return_value = json_payload({'results': records, 'endOfRecords': True})

        result = GBIFDownloader(transport=transport).acquire({
            'scientificName': 'Fagus sylvatica',
            'filters': [{'name': 'byCategory', 'parameters': {'column': 'countryCode', 'value': 'HR'}}],
        })

        self.assertEqual([s.name for s in result.provenance.stage_counts], ['byKeyword', 'byCategory'])
        self.assertEqual(result.data.column('key'), ['2'])

    def test_non_json_page(self):
        transport = MagicMock()
        transport.fetch.return_value = RawPayload(origin_url='https://api.gbif.org/v1/occurrence/search',
                                                  content_type='json', content=b'<html>maintenance</html>')

        with self.assertRaises(EmptyDataset):
            GBIFDownloader(transport=transport).acquire({'scientificName': 'Fagus sylvatica'})

        transport.fetch.return_value = json_payload([occurrence(1, 'forest')])
        with self.assertRaises(EmptyDataset):
            GBIFDownloader(transport=transport).acquire({'scientificName': 'Fagus sylvatica'})

    def test_no_occurrences(self):
        transport = MagicMock()
        transport.fetch.return_value = json_payload({'results': [], 'endOfRecords': True})

        with self.assertRaises(EmptyDataset):
            GBIFDownloader(transport=transport).acquire({'scientificName': 'Nonexistens species'})


class TestMODISDownloader(unittest.TestCase):
    """Date catalog lookup, chunked subset requests and rescaling."""

    def setUp(self):
        self.catalog = {'dates': (
            [{'modis_date': 'A2017353', 'calendar_date': '2017-12-19'}]
            + [{'modis_date': f"A2018{day:03d}", 'calendar_date': None} for day in range(1, 193, 16)]
            + [{'modis_date': 'A2019001', 'calendar_date': '2019-01-01'}]
        )}

        def fetch(url, expected_format='binary', params=None, destination=None):
            if url.endswith('/dates'):
                return json_payload(self.catalog, url)
            return json_payload({'subset': [
                {'modis_date': params['startDate'], 'band': params['band'], 'data': [6500, 6000]},
            ]}, url)

        self.transport = MagicMock()
        self.transport.fetch.side_effect = fetch

    def test_chunked_subsets(self):
        result = MODISDownloader(transport=self.transport).acquire({
            'lat': 46.0, 'lon': 14.5, 'start_date': '2018-01-01', 'end_date': '2018-12-31',
        })

        # catalog + 12 dates in chunks of 10
        self.assertEqual(self.transport.fetch.call_count, 3)
        subset_calls = self.transport.fetch.call_args_list[1:]
        self.assertEqual(subset_calls[0].kwargs['params']['startDate'], 'A2018001')
        self.assertEqual(subset_calls[0].kwargs['params']['endDate'], 'A2018145')
        self.assertEqual(subset_calls[1].kwargs['params']['startDate'], 'A2018161')
        self.assertEqual(subset_calls[1].kwargs['params']['endDate'], 'A2018177')

        self.assertEqual(len(result.data), 4)
        self.assertEqual(set(result.data.column('site')), {'site_46_14.5'})
        self.assertEqual(set(result.data.column('product')), {'MOD13Q1'})
        self.assertEqual(result.data.column('value'), [0.65, 0.6, 0.65, 0.6])

    def test_no_dates_in_window(self):
        with self.assertRaises(EmptyDataset):
            MODISDownloader(transport=self.transport).acquire({
                'lat': 46.0, 'lon': 14.5, 'start_date': '2010-01-01', 'end_date': '2010-12-31',
            })

        self.assertEqual(self.transport.fetch.call_count, 1)

    def test_non_json_catalog(self):
        self.transport.fetch.side_effect = None
        self.transport.fetch.return_value = RawPayload(origin_url='https://modis.ornl.gov/rst/api/v1/MOD13Q1/dates',
                                                       content_type='json', content=b'Service Unavailable')

        with self.assertRaises(EmptyDataset):
            MODISDownloader(transport=self.transport).acquire({
                'lat': 46.0, 'lon': 14.5, 'start_date': '2018-01-01', 'end_date': '2018-12-31',
            })

        self.assertEqual(self.transport.fetch.call_count, 1)


class TestFAODownloader(unittest.TestCase):
    """Bulk archive download, extraction and country/product filters."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.csv_path = self.test_dir / 'Forestry_E_All_Data.csv'
        self.csv_path.write_bytes(
            ("Area Code,Area,Item Code,Item,Element,Unit,Y2019,Y2020\n"
             "198,Slovenia,1861,Roundwood,Production,m3,5000,5200\n"
             "198,Slovenia,1872,Sawnwood,Production,m3,900,950\n"
             "98,Croatia,1861,Roundwood,Production,m3,4000,4100\n"
             "198,Slovenia,1861,,Production,m3,1,2\n").encode('latin-1')
        )

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def make_transport(self, ambiguous=False):
        transport = MagicMock()
        transport.fetch.side_effect = lambda url, expected_format='binary', params=None, destination=None: \
            RawPayload(origin_url=url, content_type='zip', path=destination, byte_count=4096)
        transport.extract.return_value = RawPayload(origin_url='fao', content_type='csv', path=self.csv_path,
                                                    ambiguous=ambiguous,
                                                    candidates=['Forestry_E_All_Data.csv'])
        return transport

    def test_country_and_product_filters(self):
        transport = self.make_transport()

        result = FAODownloader(transport=transport).acquire({'country': 'Slovenia', 'productType': 'roundwood'})

        self.assertEqual(result.provenance.normalized_count, 4)
        self.assertEqual([s.output_count for s in result.provenance.stage_counts], [3, 1])
        self.assertEqual(result.records[0]['Y2020'], 5200.0)
        self.assertFalse(result.provenance.ambiguous_extraction)
        self.assertEqual(transport.extract.call_args.kwargs['expected_suffix'], '.csv')

    def test_filter_on_numeric_code_column(self):
        transport = self.make_transport()

        result = FAODownloader(transport=transport).acquire({
            'filters': [{'name': 'byCategory', 'parameters': {'column': 'Item Code', 'value': 1861}}],
        })

        self.assertEqual(result.provenance.stage_counts[-1].output_count, 3)
        self.assertEqual(set(result.data.column('Item Code')), {1861.0})

    def test_download_dir_and_ambiguity(self):
        transport = self.make_transport(ambiguous=True)

        result = FAODownloader(transport=transport).acquire({'download_dir': str(self.test_dir)})

        destination = transport.fetch.call_args.kwargs['destination']
        self.assertEqual(destination, self.test_dir / 'Forestry_E_All_Data.zip')
        self.assertTrue(result.provenance.ambiguous_extraction)
        self.assertEqual(len(result.data), 4)


class TestEFFISProcessor(unittest.TestCase):
    """Local shapefile processing."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.shapefile = self.test_dir / 'modis.ba.poly.shp'
        self.shapefile.write_bytes(b'\x00' * 100)
        self.reader = MagicMock()
        self.reader.read.return_value = pd.DataFrame({
            'FIREDATE': ['2019-07-01 12:00:00', '2019-12-31 15:30:00', '2019-08-01 10:00:00'],
            'COUNTRY': ['SI', 'SI', 'HR'],
            'AREA_HA': ['10', '50', '100'],
        })

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_missing_shapefile(self):
        transport = MagicMock()

        with self.assertRaises(MissingLocalFile):
            EFFISProcessor(transport=transport, shapefile_reader=self.reader).acquire(
                {'shapefile_path': str(self.test_dir / 'missing.shp')})

        transport.fetch.assert_not_called()
        self.reader.read.assert_not_called()

    def test_filters(self):
        transport = MagicMock()

        result = EFFISProcessor(transport=transport, shapefile_reader=self.reader).acquire({
            'shapefilePath': str(self.shapefile),
            'country_code': 'si',
            'start_date': '2019-01-01',
            'end_date': '2019-12-31',
            'min_area_ha': 30,
        })

        self.assertEqual([s.name for s in result.provenance.stage_counts],
                         ['byCategory', 'byDateRange', 'byMinimum'])
        self.assertEqual([s.output_count for s in result.provenance.stage_counts], [2, 2, 1])
        self.assertEqual(result.data.column('AREA_HA'), [50.0])
        self.assertEqual(result.provenance.source_urls, [str(self.shapefile)])
        transport.fetch.assert_not_called()


class TestDownloaderFactory(unittest.TestCase):
    """Test downloader factory functionality."""

    def test_every_provider_has_a_downloader(self):
        self.assertEqual(set(DownloaderFactory.DOWNLOADERS), set(Provider))

    def test_create_downloader(self):
        downloader = DownloaderFactory.create_downloader('gbif', transport=MagicMock())
        self.assertIsInstance(downloader, GBIFDownloader)

        downloader = DownloaderFactory.create_downloader(Provider.EFFIS, shapefile_reader=MagicMock())
        self.assertIsInstance(downloader, EFFISProcessor)

    def test_unknown_provider(self):
        with self.assertRaises(InvalidRequest):
            DownloaderFactory.create_downloader('landsat')

    def test_get_available_downloaders(self):
        info = DownloaderFactory.get_available_downloaders()

        self.assertEqual(set(info), {'CRU', 'GBIF', 'MODIS', 'FAO', 'EFFIS'})
        self.assertEqual(info['MODIS']['class'], 'MODISDownloader')
        self.assertEqual(info['MODIS']['required_parameters'], ['lat', 'lon'])

    def test_module_level_acquire(self):
        transport = MagicMock()
        transport.fetch.return_value = json_payload({
            'results': [occurrence(1, 'forest')], 'endOfRecords': True,
        })

        result = acquire('GBIF', {'scientificName': 'Fagus sylvatica'}, transport=transport)

        self.assertEqual(result.provenance.final_count, 1)
        self.assertEqual(result.provenance.to_dict()['provider'], 'GBIF')


if __name__ == '__main__':
    unittest.main()
