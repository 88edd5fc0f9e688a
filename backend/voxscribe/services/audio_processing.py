"""Media normalization using FFmpeg.

Any upload, audio or video, is decoded and re-encoded to one canonical audio
encoding so transcription providers always receive the same format.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import ffmpeg

from voxscribe.config import settings
from voxscribe.errors import ConversionError
from voxscribe.utils.storage import SCRATCH_DIR, ensure_dir_exists, safe_suffix

# Get a logger for this module
logger = logging.getLogger(__name__)

# Reduce FFmpeg chatter to errors only
FFMPEG_GLOBAL_ARGS = ['-hide_banner', '-loglevel', 'error']

VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v", ".mpeg", ".mpg", ".3gp", ".flv"}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".ogg", ".oga", ".opus", ".flac", ".wma", ".amr", ".weba"}
SUPPORTED_EXTENSIONS = VIDEO_EXTENSIONS | AUDIO_EXTENSIONS


class MediaNormalizer:
    """Decode arbitrary media and re-encode its audio track canonically.

    Scratch files live in a per-call temporary directory that is removed on
    every exit path, whether FFmpeg succeeds or not.
    """

    def __init__(
        self,
        ffmpeg_cmd: str | None = None,
        codec: str | None = None,
        container: str | None = None,
        sample_rate: int | None = None,
        channels: int | None = None,
        bitrate: str | None = None,
        scratch_root: Path | None = None,
    ) -> None:
        self.ffmpeg_cmd = ffmpeg_cmd or settings.FFMPEG_PATH
        self.codec = codec or settings.AUDIO_CODEC
        self.container = container or settings.AUDIO_FORMAT
        self.sample_rate = sample_rate or settings.AUDIO_SAMPLE_RATE
        self.channels = channels or settings.AUDIO_CHANNELS
        self.bitrate = bitrate or settings.AUDIO_BITRATE
        self.scratch_root = scratch_root or SCRATCH_DIR

    @property
    def output_extension(self) -> str:
        return f".{self.container}"

    def normalized_name(self, original_name: str | None) -> str:
        """File name hint for providers: original stem + canonical extension."""
        stem = Path(original_name or "").stem or "audio"
        return f"{stem}{self.output_extension}"

    def normalize(self, raw_bytes: bytes, original_name: str | None, denoise: bool = False) -> bytes:
        """
        Convert ``raw_bytes`` to canonical audio bytes.

        Args:
            raw_bytes: The uploaded or downloaded media.
            original_name: Used only for its extension, as a container hint.
            denoise: Apply FFmpeg's ``afftdn`` denoiser during the encode.

        Raises:
            ConversionError: If the input is empty or FFmpeg fails to decode/encode it.
        """
        if not raw_bytes:
            raise ConversionError("Cannot normalize empty media")

        ensure_dir_exists(self.scratch_root)
        with tempfile.TemporaryDirectory(prefix="normalize-", dir=self.scratch_root) as scratch:
            input_path = Path(scratch) / f"input{safe_suffix(original_name)}"
            output_path = Path(scratch) / f"output{self.output_extension}"
            input_path.write_bytes(raw_bytes)
            logger.debug("Normalizing %d bytes (%s) in %s", len(raw_bytes), original_name, scratch)

            try:
                audio = ffmpeg.input(str(input_path)).audio
                if denoise:
                    logger.debug("Applying afftdn denoise filter.")
                    audio = audio.filter("afftdn")

                stream = ffmpeg.output(
                    audio,
                    str(output_path),
                    acodec=self.codec,
                    ac=self.channels,
                    ar=self.sample_rate,
                    audio_bitrate=self.bitrate,
                    format=self.container,
                ).global_args(*FFMPEG_GLOBAL_ARGS)
                stdout, stderr = ffmpeg.run(
                    stream,
                    cmd=self.ffmpeg_cmd,
                    overwrite_output=True,
                    capture_stdout=True,
                    capture_stderr=True,
                )
                if stderr:
                    logger.warning("FFmpeg stderr: %s", stderr.decode('utf-8', errors='replace'))
            except ffmpeg.Error as e:
                error_details = e.stderr.decode('utf8', errors='replace') if e.stderr else "No stderr details from FFmpeg."
                logger.error("FFmpeg error normalizing %s: %s", original_name, error_details)
                raise ConversionError(f"Failed to convert media file: {error_details.strip()[:500]}") from e
            except OSError as e:
                # ffmpeg binary missing or not executable
                logger.error("Could not run FFmpeg (%s): %s", self.ffmpeg_cmd, e)
                raise ConversionError(f"Failed to run FFmpeg: {e}") from e

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise ConversionError("FFmpeg produced no audio output (does the media have an audio track?)")

            normalized = output_path.read_bytes()

        logger.info("Normalized %s: %d -> %d bytes", original_name, len(raw_bytes), len(normalized))
        return normalized
