"""
Batch downloader
Writes a metadata manifest for the selected ads and pulls their images and
videos into a fresh batch directory, a bounded number at a time.
"""

import re
import json
import shutil
import logging
import http.client
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .errors import FetchError, ValidationError

logger = logging.getLogger('adfetch.downloader')

DOWNLOAD_TYPES = ('all', 'images', 'videos', 'text')
MANIFEST_NAME = 'metadata.json'
USER_AGENT = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 Chrome/120.0.0.0 Safari/537.36'

# kind -> (ad field, url key, extension)
ASSET_SOURCES = {
    'image': ('ad_creative_images', 'url', 'jpg'),
    'video': ('ad_creative_videos', 'video_url', 'mp4'),
}


@dataclass
class AssetTask:
    url: str
    destination: Path
    kind: str
    ad_id: str
    index: int


@dataclass
class TaskResult:
    task: AssetTask
    ok: bool
    bytes_written: int = 0
    error: Optional[str] = None

    def to_dict(self):
        return {
            'file': self.task.destination.name,
            'url': self.task.url,
            'kind': self.task.kind,
            'ok': self.ok,
            'bytes': self.bytes_written,
            'error': self.error,
        }


@dataclass
class DownloadBatch:
    batch_id: str
    directory: Path
    created_at: datetime
    manifest_path: Optional[Path] = None


@dataclass
class BatchResult:
    batch: DownloadBatch
    results: List[TaskResult] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> List[TaskResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed


def fetch_asset(url: str, destination: Path, timeout: float = 60.0) -> int:
    """Stream url into destination, truncating any existing file. Returns bytes written."""
    try:
        req = urllib.request.Request(url, headers={'User-Agent': USER_AGENT})
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            if not 200 <= resp.status < 300:
                raise FetchError(url, f'HTTP {resp.status}')
            with open(destination, 'wb') as f:
                shutil.copyfileobj(resp, f)
                return f.tell()
    except urllib.error.HTTPError as e:
        raise FetchError(url, f'HTTP {e.code} {e.reason}')
    except urllib.error.URLError as e:
        raise FetchError(url, e.reason)
    except http.client.IncompleteRead as e:
        raise FetchError(url, f'body cut off after {len(e.partial)} bytes')
    except (OSError, ValueError, http.client.HTTPException) as e:
        raise FetchError(url, e)


def _safe_id(ad_id) -> str:
    return re.sub(r'[^\w-]', '', str(ad_id))


def _first(values):
    if isinstance(values, (list, tuple)) and values:
        return values[0]
    return None


def summarize_ad(ad: dict) -> dict:
    return {
        'id': ad.get('id'),
        'pageName': ad.get('page_name'),
        'adCreativeBody': _first(ad.get('ad_creative_bodies')),
        'adCreativeLinkTitle': _first(ad.get('ad_creative_link_titles')),
        'adCreativeLinkDescription': _first(ad.get('ad_creative_link_descriptions')),
        'adCreativeLinkUrl': ad.get('ad_creative_link_url'),
        'adSnapshotUrl': ad.get('ad_snapshot_url'),
        'adDeliveryStartTime': ad.get('ad_delivery_start_time'),
        'adDeliveryStopTime': ad.get('ad_delivery_stop_time'),
    }


def validate_request(ads, download_type):
    if not ads or not isinstance(ads, list):
        raise ValidationError('No ads selected for download')
    seen = set()
    for i, ad in enumerate(ads):
        if not isinstance(ad, dict) or not _safe_id(ad.get('id') or ''):
            raise ValidationError(f'Ad at position {i} has no id')
        # file names are keyed on the sanitized id
        ad_id = _safe_id(ad['id'])
        if ad_id in seen:
            raise ValidationError(f'Duplicate ad id: {ad_id}')
        seen.add(ad_id)
    download_type = download_type or 'all'
    if not isinstance(download_type, str) or download_type not in DOWNLOAD_TYPES:
        raise ValidationError(f'Invalid downloadType: {download_type}')
    return download_type


def create_batch_dir(root: Path) -> DownloadBatch:
    """Claim a new batch-<timestamp> directory; mkdir is the atomic claim."""
    root.mkdir(parents=True, exist_ok=True)
    now = datetime.now(timezone.utc)
    stamp = now.strftime('%Y-%m-%dT%H-%M-%S-') + f'{now.microsecond // 1000:03d}Z'
    base = f'batch-{stamp}'
    name, n = base, 0
    while True:
        path = root / name
        try:
            path.mkdir()
        except FileExistsError:
            n += 1
            name = f'{base}-{n}'
            continue
        return DownloadBatch(batch_id=name, directory=path, created_at=now)


def write_manifest(batch: DownloadBatch, ads, download_type: str) -> Path:
    manifest = {
        'downloadDate': batch.created_at.isoformat(),
        'downloadType': download_type,
        'ads': [summarize_ad(ad) for ad in ads],
    }
    path = batch.directory / MANIFEST_NAME
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(manifest, f, indent=2, ensure_ascii=False)
    batch.manifest_path = path
    return path


def enumerate_tasks(ads, download_type: str, directory: Path) -> List[AssetTask]:
    kinds = []
    if download_type in ('all', 'images'):
        kinds.append('image')
    if download_type in ('all', 'videos'):
        kinds.append('video')

    tasks = []
    for ad in ads:
        ad_id = _safe_id(ad['id'])
        for kind in kinds:
            source, key, ext = ASSET_SOURCES[kind]
            for i, item in enumerate(ad.get(source) or []):
                url = item.get(key) if isinstance(item, dict) else None
                if not url:
                    continue
                tasks.append(AssetTask(
                    url=url,
                    destination=directory / f'{ad_id}_{kind}_{i}.{ext}',
                    kind=kind,
                    ad_id=ad_id,
                    index=i,
                ))
    return tasks


def _run_task(task: AssetTask, timeout: float) -> TaskResult:
    try:
        size = fetch_asset(task.url, task.destination, timeout=timeout)
    except FetchError as e:
        logger.error('Failed %s: %s', task.destination.name, e.reason)
        return TaskResult(task, ok=False, error=e.reason)
    logger.info('Saved %s (%dKB)', task.destination.name, size // 1024)
    return TaskResult(task, ok=True, bytes_written=size)


def download_batch(ads, download_type='all', root=Path('downloads'),
                   max_workers=8, timeout=60.0) -> BatchResult:
    """Write the manifest and download every requested asset, waiting for all of them."""
    download_type = validate_request(ads, download_type)

    batch = create_batch_dir(Path(root))
    write_manifest(batch, ads, download_type)
    tasks = enumerate_tasks(ads, download_type, batch.directory)
    logger.info('Batch %s: %d ads, %d files to download (%s)',
                batch.batch_id, len(ads), len(tasks), download_type)

    result = BatchResult(batch)
    if tasks:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            result.results = list(pool.map(lambda t: _run_task(t, timeout), tasks))

    if result.ok:
        logger.info('Batch %s done: %d files', batch.batch_id, result.file_count)
    else:
        logger.error('Batch %s: %d of %d downloads failed',
                     batch.batch_id, len(result.failed), len(result.results))
    return result
