"""YouTube audio fetching with yt-dlp.

The URL is validated before any network I/O; only then is the best audio
stream downloaded into a scratch directory and piped through the
:class:`MediaNormalizer`.
"""

from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import yt_dlp

from voxscribe.errors import ConversionError, InvalidSourceError, RemoteMediaError
from voxscribe.services.audio_processing import MediaNormalizer
from voxscribe.utils.storage import SCRATCH_DIR, ensure_dir_exists

logger = logging.getLogger(__name__)

YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
_PATH_PREFIXES = ("/shorts/", "/embed/", "/live/", "/v/")
_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")


def extract_video_id(url: str | None) -> str:
    """Return the 11-character video id of a YouTube link.

    Raises:
        InvalidSourceError: If ``url`` is not a well-formed YouTube video link.
    """
    candidate = (url or "").strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        raise InvalidSourceError(f"Invalid YouTube URL: {url!r}")

    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidSourceError(f"Invalid YouTube URL: {url!r}")

    host = parsed.hostname.lower()
    video_id = None
    if host in SHORT_HOSTS:
        video_id = parsed.path.lstrip("/").split("/")[0]
    elif host in YOUTUBE_HOSTS:
        if parsed.path == "/watch":
            video_id = (parse_qs(parsed.query).get("v") or [""])[0]
        else:
            for prefix in _PATH_PREFIXES:
                if parsed.path.startswith(prefix):
                    video_id = parsed.path[len(prefix):].split("/")[0]
                    break

    if not video_id or not _VIDEO_ID.match(video_id):
        raise InvalidSourceError(f"Invalid YouTube URL: {url!r}")
    return video_id


def is_valid_url(url: str | None) -> bool:
    try:
        extract_video_id(url)
    except InvalidSourceError:
        return False
    return True


class RemoteMediaFetcher:
    """Download a video's audio track and normalize it."""

    def __init__(self, normalizer: MediaNormalizer, scratch_root: Path | None = None) -> None:
        self.normalizer = normalizer
        self.scratch_root = scratch_root or SCRATCH_DIR

    def validate(self, url: str) -> str:
        return extract_video_id(url)

    def fetch_audio(self, url: str, denoise: bool = False) -> tuple[bytes, str]:
        """
        Returns:
            ``(normalized_audio_bytes, title)``

        Raises:
            InvalidSourceError: Before any I/O, for malformed/unsupported URLs.
            RemoteMediaError: For any download or normalization failure.
        """
        video_id = self.validate(url)

        ensure_dir_exists(self.scratch_root)
        with tempfile.TemporaryDirectory(prefix="fetch-", dir=self.scratch_root) as scratch:
            ydl_opts = {
                'format': 'bestaudio/best',
                'outtmpl': str(Path(scratch) / '%(id)s.%(ext)s'),
                'noplaylist': True,
                'no_warnings': True,
                'quiet': True,
            }
            logger.info("Downloading audio for YouTube video %s", video_id)
            try:
                with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                    info = ydl.extract_info(url, download=True)
                    if not info:
                        raise RemoteMediaError(url, "no video metadata returned")
                    downloaded = Path(ydl.prepare_filename(info))
            except RemoteMediaError:
                raise
            except (yt_dlp.utils.YoutubeDLError, OSError) as e:
                logger.error("yt-dlp download failed for %s: %s", url, e)
                raise RemoteMediaError(url, str(e)) from e

            title = info.get("title") or video_id
            if not downloaded.exists():
                # Post-processors may change the extension; fall back to any file named after the id.
                matches = [p for p in Path(scratch).glob(f"{info.get('id', video_id)}.*") if p.is_file()]
                if not matches:
                    raise RemoteMediaError(url, "downloaded file not found")
                downloaded = matches[0]

            try:
                raw = downloaded.read_bytes()
            except OSError as e:
                logger.error("Could not read downloaded file %s: %s", downloaded, e)
                raise RemoteMediaError(url, f"could not read downloaded file: {e}") from e
            logger.info("Downloaded %d bytes for '%s' (%s)", len(raw), title, video_id)

            try:
                audio = self.normalizer.normalize(raw, downloaded.name, denoise=denoise)
            except ConversionError as e:
                raise RemoteMediaError(url, e.detail) from e

        return audio, title
