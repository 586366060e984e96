"""
Network download manager with progress tracking, retry logic, and checksum verification.

This module provides:
- HTTP/HTTPS downloads with redirects and TLS verification
- Cached downloads (an existing non-empty file is reused)
- Resume of interrupted downloads from a ``.part`` file
- Progress reporting (bytes, percentage, speed, ETA)
- Retry with exponential backoff for transient connection errors
- A bounded total wait per download
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from provisionkit.core.exceptions import ChecksumError, DownloadError, DownloadTimeout

logger = logging.getLogger(__name__)


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining

    def __str__(self) -> str:
        return format_progress(self)


class StreamingHasher:
    """Compute a SHA-256 hash incrementally for streaming downloads."""

    def __init__(self):
        self.hasher = hashlib.sha256()

    def update(self, data: bytes):
        self.hasher.update(data)

    def finalize(self) -> str:
        return self.hasher.hexdigest()

    def verify(self, expected_hash: str) -> bool:
        return self.finalize().lower() == expected_hash.lower()


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    timeout: float = 600,
    request_timeout: float = 30,
    max_retries: int = 3,
) -> Path:
    """
    Download file from URL to destination unless it is already cached.

    Data is streamed into ``<destination>.part`` and renamed on completion,
    so a non-empty ``destination`` is always a finished download.

    Args:
        url: URL to download from
        destination: Local path to save file
        expected_sha256: Expected SHA256 hash (verified during download)
        progress_callback: Optional callback for progress updates
        timeout: Total time budget in seconds across all attempts
        request_timeout: Connect/read timeout for each request
        max_retries: Maximum number of attempts

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: If download fails after retries
        DownloadTimeout: If the total time budget is exceeded
        ChecksumError: If checksum doesn't match expected value
        ValueError: If URL or destination is invalid

    Example:
        >>> download_file(
        ...     "https://nodejs.org/dist/v14.17.0/node-v14.17.0-linux-x64.tar.gz",
        ...     Path("downloads/node-v14.17.0-linux-x64.tar.gz"),
        ... )
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    if destination.exists() and destination.stat().st_size > 0:
        if not expected_sha256 or verify_checksum(destination, expected_sha256):
            logger.info(f"{destination.name} already exists and is not empty, skipping download")
            return destination
        logger.warning("Checksum mismatch on cached file, re-downloading")
        destination.unlink()

    part_path = destination.with_name(destination.name + ".part")
    deadline = time.monotonic() + timeout

    for attempt in range(max_retries):
        resume_from = part_path.stat().st_size if part_path.exists() else 0
        if resume_from:
            logger.info(f"Resuming download from byte {resume_from}")

        try:
            _download_with_progress(
                url=url,
                part_path=part_path,
                resume_from=resume_from,
                expected_sha256=expected_sha256,
                progress_callback=progress_callback,
                request_timeout=request_timeout,
                deadline=deadline,
            )
            part_path.replace(destination)
            logger.info(f"Download complete: {destination}")
            return destination
        except (Timeout, ConnectionError, HTTPError, RequestException) as e:
            if time.monotonic() >= deadline:
                raise DownloadTimeout(
                    f"Download of {url} exceeded {timeout:.0f}s"
                ) from e
            if attempt == max_retries - 1:
                raise DownloadError(
                    f"Download failed after {max_retries} attempts: {e}"
                ) from e

            backoff_seconds = 2**attempt
            logger.warning(
                f"Download attempt {attempt + 1} failed: {e}. "
                f"Retrying in {backoff_seconds}s..."
            )
            time.sleep(backoff_seconds)

    raise DownloadError("Download failed for unknown reason")


def _download_with_progress(
    url: str,
    part_path: Path,
    resume_from: int,
    expected_sha256: Optional[str],
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    request_timeout: float,
    deadline: float,
):
    """
    Stream one attempt into ``part_path``.

    Raises:
        DownloadTimeout: If ``deadline`` passes mid-stream
        ChecksumError: If checksum doesn't match
        RequestException: If HTTP request fails
    """
    headers = {}
    if resume_from > 0:
        headers["Range"] = f"bytes={resume_from}-"

    logger.info(f"Downloading {url}...")

    response = requests.get(
        url, headers=headers, stream=True, timeout=request_timeout, allow_redirects=True
    )
    response.raise_for_status()

    # Server ignored the Range header, start over
    if resume_from > 0 and response.status_code != 206:
        resume_from = 0

    content_length = response.headers.get("content-length")
    total_size = int(content_length) + resume_from if content_length else 0

    mode = "ab" if resume_from > 0 else "wb"
    hasher = StreamingHasher() if expected_sha256 else None

    if resume_from > 0 and hasher:
        with open(part_path, "rb") as f:
            while chunk := f.read(8192):
                hasher.update(chunk)

    downloaded = resume_from
    start_time = time.monotonic()
    last_progress_time = start_time

    with open(part_path, mode) as f:
        for chunk in response.iter_content(chunk_size=8192):
            if time.monotonic() > deadline:
                response.close()
                raise DownloadTimeout(f"Download of {url} timed out")

            if not chunk:
                continue

            f.write(chunk)
            downloaded += len(chunk)
            if hasher:
                hasher.update(chunk)

            # Report progress at most twice per second
            current_time = time.monotonic()
            if progress_callback and (
                current_time - last_progress_time >= 0.5 or downloaded == total_size
            ):
                elapsed = current_time - start_time
                speed = (downloaded - resume_from) / elapsed if elapsed > 0 else 0
                remaining = total_size - downloaded if total_size > 0 else 0
                progress_callback(
                    DownloadProgress(
                        bytes_downloaded=downloaded,
                        total_bytes=total_size if total_size > 0 else downloaded,
                        percentage=(downloaded / total_size * 100)
                        if total_size > 0
                        else 0,
                        speed_bps=speed,
                        eta_seconds=remaining / speed if speed > 0 else 0,
                    )
                )
                last_progress_time = current_time

    if expected_sha256 and hasher and not hasher.verify(expected_sha256):
        actual_hash = hasher.finalize()
        part_path.unlink()
        raise ChecksumError(
            f"Checksum mismatch for {url}: expected {expected_sha256}, got {actual_hash}"
        )


def verify_checksum(file_path: Path, expected_sha256: str) -> bool:
    """
    Verify file SHA256 checksum.

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while chunk := f.read(8192):
            hasher.update(chunk)

    return hasher.hexdigest().lower() == expected_sha256.lower()


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"
