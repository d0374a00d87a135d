"""Downloads page images to local storage."""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiohttp

from ..config import Settings, settings as default_settings
from ..core.exceptions import DownloadFailed
from ..core.http_client import AsyncHTTPClient, use_http_client

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = 'image/jpeg'
CHUNK_SIZE = 8192


@dataclass(frozen=True)
class StoredAsset:
    """Result of a successful download."""
    stored_path: Path
    byte_size: int
    mime_type: str


def resolve_mime_type(content_type: Optional[str], path: Path) -> str:
    """Pick a MIME type from the response header, the file extension, or the default."""
    if content_type:
        mime = content_type.split(';', 1)[0].strip().lower()
        if mime and mime != 'application/octet-stream':
            return mime
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or DEFAULT_MIME_TYPE


class AssetFetcher:
    """Fetches remote page images and writes them to disk."""

    def __init__(self, http_client: Optional[AsyncHTTPClient] = None, timeout: Optional[int] = None,
                 config: Settings = default_settings):
        self.http_client = http_client
        self.timeout = timeout or config.download_timeout

    async def fetch(self, remote_url: str, destination_path: Path) -> StoredAsset:
        """Download ``remote_url`` to ``destination_path``, overwriting any existing file."""
        destination_path = Path(destination_path)
        destination_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            async with use_http_client(self.http_client) as client:
                response = await client.get(remote_url, timeout=aiohttp.ClientTimeout(total=self.timeout))
                async with response:
                    if response.status < 200 or response.status >= 300:
                        raise DownloadFailed(
                            f"Download failed: HTTP {response.status} for {remote_url}",
                            url=remote_url,
                            status_code=response.status
                        )
                    content_type = response.headers.get('Content-Type', '')
                    async with aiofiles.open(destination_path, 'wb') as f:
                        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                            await f.write(chunk)
        except DownloadFailed:
            raise
        except asyncio.TimeoutError as e:
            raise DownloadFailed(f"Download timed out after {self.timeout}s: {remote_url}", url=remote_url) from e
        except (aiohttp.ClientError, OSError) as e:
            raise DownloadFailed(f"Download error for {remote_url}: {e}", url=remote_url) from e

        byte_size = destination_path.stat().st_size
        mime_type = resolve_mime_type(content_type, destination_path)
        logger.info(f"📥 Downloaded {byte_size} bytes to {destination_path}")

        return StoredAsset(stored_path=destination_path, byte_size=byte_size, mime_type=mime_type)
