"""
Tests for the SDN archive downloader
Network access is mocked; archives are built in a temporary directory
"""

import shutil
import zipfile
import pytest
import requests
from pathlib import Path
from unittest.mock import patch, MagicMock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from tenacity import wait_none

from config_manager import ConfigManager
from downloader import SdnDownloader, DownloadError, read_publish_info
from screener import search_file

DATA_DIR = Path(__file__).parent / "data"
SAMPLE = DATA_DIR / "sdn_sample.xml"
URL = "https://example.test/ofac/downloads/sdn_xml.zip"


def uids(records):
    return [r.uid for r in records]


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"data:\n"
        f"  sdn_url: {URL}\n"
        f"  data_directory: {tmp_path / 'data'}\n"
        f"  max_retry_attempts: 3\n"
        f"  timeout_seconds: 5\n",
        encoding='utf-8'
    )
    return ConfigManager(str(path))


@pytest.fixture
def downloader(config):
    dl = SdnDownloader(config)
    dl.retry_wait = wait_none()
    return dl


@pytest.fixture
def archive_bytes(tmp_path):
    """Zip archive holding the sample document under an upper-case name"""
    zip_path = tmp_path / "build.zip"
    with zipfile.ZipFile(zip_path, 'w') as zf:
        zf.write(SAMPLE, arcname="SDN.XML")
    return zip_path.read_bytes()


def fake_response(content: bytes, status: int = 200):
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.iter_content.return_value = [content[i:i + 1024] for i in range(0, len(content), 1024)]
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return response


class TestFetch:
    """Tests for downloading the archive"""

    def test_archive_path_from_url(self, downloader, tmp_path):
        assert downloader.archive_path() == tmp_path / 'data' / 'sdn_xml.zip'
        assert downloader.archive_path("https://x.test/a/list.zip?v=2").name == 'list.zip'

    def test_archive_path_without_name(self, downloader):
        with pytest.raises(DownloadError):
            downloader.archive_path("https://x.test/?v=1")

    def test_fetch_writes_file(self, downloader, archive_bytes):
        with patch('downloader.requests.get', return_value=fake_response(archive_bytes)) as mock_get:
            path = downloader.fetch()

        assert path.read_bytes() == archive_bytes
        assert not path.with_name(path.name + '.part').exists()
        mock_get.assert_called_once_with(URL, stream=True, timeout=5)

    def test_retries_transient_errors(self, downloader, archive_bytes):
        responses = [
            requests.ConnectionError("reset"),
            requests.Timeout("slow"),
            fake_response(archive_bytes),
        ]
        with patch('downloader.requests.get', side_effect=responses) as mock_get:
            path = downloader.fetch()

        assert mock_get.call_count == 3
        assert path.exists()

    def test_gives_up_after_max_attempts(self, downloader):
        with patch('downloader.requests.get', side_effect=requests.ConnectionError("down")) as mock_get:
            with pytest.raises(DownloadError) as exc_info:
                downloader.fetch()

        assert mock_get.call_count == 3
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_http_error_is_not_retried(self, downloader):
        with patch('downloader.requests.get', return_value=fake_response(b'', status=404)) as mock_get:
            with pytest.raises(DownloadError):
                downloader.fetch()

        assert mock_get.call_count == 1


class TestExtract:
    """Tests for unpacking the document"""

    def test_extract_matches_member_case_insensitively(self, downloader, archive_bytes, tmp_path):
        zip_path = tmp_path / "sdn_xml.zip"
        zip_path.write_bytes(archive_bytes)

        target = downloader.extract(zip_path)

        assert target == downloader.xml_path
        assert target.read_bytes() == SAMPLE.read_bytes()

    def test_live_document_is_replaced_whole(self, downloader, archive_bytes, tmp_path):
        """A search running during extraction sees the complete previous document"""
        zip_path = tmp_path / "sdn_xml.zip"
        zip_path.write_bytes(archive_bytes)
        downloader.data_dir.mkdir(parents=True)
        shutil.copy(SAMPLE, downloader.xml_path)

        real_copy = shutil.copyfileobj
        seen = {}

        def copy_then_search(src, dst, *args, **kwargs):
            real_copy(src, dst, *args, **kwargs)
            seen['during'] = uids(search_file(downloader.xml_path, {'id': 'J287011', 'country': 'Colombia'}))

        with patch('downloader.shutil.copyfileobj', side_effect=copy_then_search):
            target = downloader.extract(zip_path)

        assert seen['during'] == ['4106']
        assert target.read_bytes() == SAMPLE.read_bytes()
        assert not target.with_name(target.name + '.part').exists()

    def test_failed_copy_keeps_previous_document(self, downloader, archive_bytes, tmp_path):
        zip_path = tmp_path / "sdn_xml.zip"
        zip_path.write_bytes(archive_bytes)
        downloader.data_dir.mkdir(parents=True)
        shutil.copy(SAMPLE, downloader.xml_path)

        with patch('downloader.shutil.copyfileobj', side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                downloader.extract(zip_path)

        assert downloader.xml_path.read_bytes() == SAMPLE.read_bytes()

    def test_member_in_subdirectory(self, downloader, tmp_path):
        zip_path = tmp_path / "nested.zip"
        with zipfile.ZipFile(zip_path, 'w') as zf:
            zf.write(SAMPLE, arcname="export/sdn.xml")

        target = downloader.extract(zip_path, dest=tmp_path / "out")
        assert target == tmp_path / "out" / "sdn.xml"

    def test_missing_archive(self, downloader, tmp_path):
        with pytest.raises(DownloadError, match="not found"):
            downloader.extract(tmp_path / "absent.zip")

    def test_invalid_archive(self, downloader, tmp_path):
        bogus = tmp_path / "bogus.zip"
        bogus.write_bytes(b"not a zip")

        with pytest.raises(DownloadError, match="Invalid ZIP"):
            downloader.extract(bogus)

    def test_missing_member(self, downloader, tmp_path):
        zip_path = tmp_path / "other.zip"
        with zipfile.ZipFile(zip_path, 'w') as zf:
            zf.writestr("cons_prim.csv", "1,2,3\n")

        with pytest.raises(DownloadError, match="sdn.xml not found"):
            downloader.extract(zip_path)


class TestEnsure:
    """Tests for keeping a local document"""

    def test_downloads_when_missing(self, downloader, archive_bytes):
        with patch('downloader.requests.get', return_value=fake_response(archive_bytes)):
            path = downloader.ensure()

        assert path.read_bytes() == SAMPLE.read_bytes()

    def test_uses_cached_copy(self, downloader, archive_bytes):
        downloader.data_dir.mkdir(parents=True)
        downloader.archive_path().write_bytes(archive_bytes)
        shutil.copy(SAMPLE, downloader.xml_path)

        with patch('downloader.requests.get') as mock_get:
            path = downloader.ensure()

        mock_get.assert_not_called()
        assert path == downloader.xml_path

    def test_force_refresh(self, downloader, archive_bytes):
        downloader.data_dir.mkdir(parents=True)
        downloader.archive_path().write_bytes(archive_bytes)
        downloader.xml_path.write_text("stale", encoding='utf-8')

        with patch('downloader.requests.get', return_value=fake_response(archive_bytes)) as mock_get:
            path = downloader.ensure(force=True)

        assert mock_get.call_count == 1
        assert path.read_bytes() == SAMPLE.read_bytes()


class TestPublishInfo:
    """Tests for reading the document header"""

    def test_reads_header(self):
        assert read_publish_info(SAMPLE) == {
            'Publish Date': '03/11/2019',
            'Record Count': '7449',
        }

    def test_missing_header(self, tmp_path):
        path = tmp_path / "sdn.xml"
        path.write_text(
            '<sdnList><sdnEntry><uid>1</uid></sdnEntry></sdnList>', encoding='utf-8'
        )
        assert read_publish_info(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(DownloadError):
            read_publish_info(tmp_path / "none.xml")

    def test_broken_header(self, tmp_path):
        path = tmp_path / "sdn.xml"
        path.write_text('<sdnList><publshInformation><Publish_Date>x</Record_Count>', encoding='utf-8')

        with pytest.raises(DownloadError):
            read_publish_info(path)
