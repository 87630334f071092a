"""
SDN List Downloader
Fetches the OFAC SDN zip archive, extracts sdn.xml and reads its publish header

This is the collaborator that supplies the search with a local document. The
search itself never touches the network or the archive.
"""

import hashlib
import logging
import shutil
import zipfile
from pathlib import Path
from typing import Dict, Optional

import requests
from lxml import etree
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from config_manager import get_config, configure_logging, ConfigManager
from xml_utils import local_name

logger = logging.getLogger(__name__)

PUBLISH_INFO_TAG = 'publshInformation'

# Transient failures worth another attempt; HTTP status errors are final
RETRYABLE_ERRORS = (requests.ConnectionError, requests.Timeout)


class DownloadError(Exception):
    """Raised when the archive cannot be fetched, extracted or read"""
    pass


class SdnDownloader:
    """Keeps a local, extracted copy of the SDN list"""

    def __init__(self, config: Optional[ConfigManager] = None):
        """Initialize downloader

        Args:
            config: Configuration manager instance
        """
        self.config = config or get_config()
        self.data_dir = Path(self.config.data.data_directory)
        self.retry_wait = wait_exponential(multiplier=1, min=1, max=30)

    @property
    def xml_path(self) -> Path:
        return self.data_dir / self.config.data.xml_name

    def archive_path(self, url: Optional[str] = None) -> Path:
        """Local path of an archive, named after the last segment of its URL"""
        url = url or self.config.data.sdn_url
        name = url.rstrip('/').rsplit('/', 1)[-1].split('?', 1)[0]
        if not name:
            raise DownloadError(f"Cannot derive a file name from URL: {url}")
        return self.data_dir / name

    def fetch(self, url: Optional[str] = None) -> Path:
        """Download the archive to the data directory

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If the download fails after all retries
        """
        url = url or self.config.data.sdn_url
        filepath = self.archive_path(url)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading SDN archive from %s", url)

        retryer = Retrying(
            stop=stop_after_attempt(self.config.data.max_retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )

        try:
            retryer(self._download, url, filepath)
        except requests.RequestException as e:
            logger.error("✗ Failed to download SDN archive: %s", e)
            raise DownloadError(f"Failed to download {url}: {e}") from e

        size_mb = filepath.stat().st_size / 1024 / 1024
        logger.info("✓ Downloaded SDN archive: %s (%.1f MB)", filepath, size_mb)
        logger.info("  File hash (SHA256): %s...", self._calculate_hash(filepath)[:16])
        return filepath

    def _download(self, url: str, filepath: Path) -> None:
        partial = filepath.with_name(filepath.name + '.part')
        with requests.get(url, stream=True, timeout=self.config.data.timeout_seconds) as response:
            response.raise_for_status()
            with open(partial, 'wb') as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
        partial.replace(filepath)

    def extract(self, zip_path: Path, member: Optional[str] = None, dest: Optional[Path] = None) -> Path:
        """Extract one XML member of the archive

        The member is matched case-insensitively and always written as
        dest/member, whatever directory it sits in inside the archive.

        Raises:
            DownloadError: If the archive is missing, invalid, or lacks the member
        """
        member = member or self.config.data.xml_name
        dest = Path(dest) if dest else self.data_dir
        zip_path = Path(zip_path)

        if not zip_path.exists():
            raise DownloadError(f"ZIP file not found: {zip_path}")

        try:
            with zipfile.ZipFile(zip_path, 'r') as zf:
                wanted = member.lower()
                names = [n for n in zf.namelist() if n.rsplit('/', 1)[-1].lower() == wanted]
                if not names:
                    raise DownloadError(f"{member} not found in {zip_path}")

                dest.mkdir(parents=True, exist_ok=True)
                target = dest / member
                # Searches may be reading target; swap the new copy in whole
                partial = target.with_name(target.name + '.part')
                with zf.open(names[0]) as src, open(partial, 'wb') as out:
                    shutil.copyfileobj(src, out)
                partial.replace(target)
        except zipfile.BadZipFile as e:
            raise DownloadError(f"Invalid ZIP file {zip_path}: {e}") from e

        logger.info("✓ Extracted %s to %s", names[0], target)
        return target

    def ensure(self, force: Optional[bool] = None) -> Path:
        """Make sure an extracted document exists locally

        Fetches and extracts only what is missing unless force is set.

        Returns:
            Path to the extracted XML document
        """
        if force is None:
            force = self.config.data.force_refresh

        zip_path = self.archive_path()
        if force or not zip_path.exists():
            self.fetch()
        else:
            logger.info("Using cached archive %s", zip_path)

        if force or not self.xml_path.exists():
            self.extract(zip_path)

        return self.xml_path

    def _calculate_hash(self, filepath: Path) -> str:
        """Calculate SHA256 hash of file"""
        sha256 = hashlib.sha256()
        with open(filepath, 'rb') as f:
            for chunk in iter(lambda: f.read(8192), b""):
                sha256.update(chunk)
        return sha256.hexdigest()


def read_publish_info(xml_path: Path) -> Dict[str, str]:
    """Read the publish header of an SDN document

    Only the header is parsed; reading stops at the first entry.

    Returns:
        Header fields with underscores as spaces, e.g. {'Publish Date': '03/11/2019',
        'Record Count': '7449'}

    Raises:
        DownloadError: If the file is missing or its header cannot be parsed
    """
    xml_path = Path(xml_path)
    if not xml_path.exists():
        raise DownloadError(f"SDN document not found: {xml_path}")

    info: Dict[str, str] = {}
    context = etree.iterparse(
        str(xml_path),
        events=('start', 'end'),
        resolve_entities=False,
        no_network=True,
        load_dtd=False
    )
    try:
        for event, elem in context:
            name = local_name(elem)
            if event == 'start' and name == 'sdnEntry':
                break
            if event == 'end' and name == PUBLISH_INFO_TAG:
                for child in elem:
                    if local_name(child) and child.text:
                        info[local_name(child).replace('_', ' ')] = child.text.strip()
                break
    except etree.XMLSyntaxError as e:
        raise DownloadError(f"Cannot read publish information from {xml_path}: {e}") from e
    finally:
        del context

    return info


def main():
    """Main entry point"""
    config = get_config()
    configure_logging(config)
    print("\n=== SDN List Downloader ===")

    downloader = SdnDownloader(config)
    try:
        xml_path = downloader.ensure()
        info = read_publish_info(xml_path)
    except DownloadError as e:
        print(f"\n✗ Error: {e}")
        return 1

    print(f"Document: {xml_path}")
    for key, value in info.items():
        print(f"  {key}: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
