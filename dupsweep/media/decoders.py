"""
Default media decoders producing 64-bit perceptual fingerprints.

Strategies:
  - Images: Pillow + ImageHash (difference hash, hue-channel average hash).
  - Video: 'pymediainfo' for duration, 'ffmpeg' to pull sampled frames.
  - Audio: 'ffmpeg' to decode a mono PCM excerpt, digested with xxHash64.
"""
import io
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import imagehash
import xxhash
from PIL import Image
from pymediainfo import MediaInfo

from .. import config
from ..exceptions import FingerprintError
from ..models import MediaType
from .adapter import Fingerprint, MediaDecoder


def hash_to_int(h: imagehash.ImageHash) -> int:
    return int(str(h), 16)


def majority_vote(values: List[int], bits: int = config.FINGERPRINT_BITS) -> int:
    """Per-bit majority across several fingerprints."""
    out = 0
    for bit in range(bits):
        ones = sum((v >> bit) & 1 for v in values)
        if ones * 2 > len(values):
            out |= 1 << bit
    return out


def read_image_resolution(path: Path) -> Optional[Tuple[int, int]]:
    """Pixel dimensions from the image header; pixel data is not decoded."""
    with Image.open(path) as im:
        return im.size


class ImageHashDecoder:
    def decode(self, path: Path) -> Optional[Fingerprint]:
        with Image.open(path) as im:
            width, height = im.size
            rgb = im.convert("RGB")

        structural = imagehash.dhash(rgb, hash_size=8)
        hue = rgb.convert("HSV").getchannel("H")
        color = imagehash.average_hash(hue, hash_size=8)
        return Fingerprint(
            structural=hash_to_int(structural),
            color=hash_to_int(color),
            width=width,
            height=height,
        )


class _FfmpegDecoder:
    def __init__(self, ffmpeg: str = "ffmpeg", timeout: float = config.DECODER_TIMEOUT_SEC):
        self.ffmpeg = ffmpeg
        self.timeout = timeout

    def available(self) -> bool:
        return shutil.which(self.ffmpeg) is not None

    def _run(self, cmd: List[str], path: Path) -> bytes:
        try:
            proc = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise FingerprintError(f"ffmpeg timed out after {self.timeout}s on {path}") from e
        if proc.returncode != 0:
            logging.debug(f"ffmpeg failed for {path}: {proc.stderr.decode(errors='replace').strip()}")
            return b""
        return proc.stdout


class VideoFrameDecoder(_FfmpegDecoder):
    """Samples evenly spaced frames and majority-votes their difference hashes."""

    def __init__(self, ffmpeg: str = "ffmpeg", frames: int = config.VIDEO_SAMPLE_FRAMES,
                 timeout: float = config.DECODER_TIMEOUT_SEC):
        super().__init__(ffmpeg, timeout)
        self.frames = frames

    def decode(self, path: Path) -> Optional[Fingerprint]:
        if not self.available():
            logging.debug(f"ffmpeg not found; skipping video fingerprint for {path}")
            return None

        duration = self._duration(path)
        if not duration:
            return None

        hashes = []
        for i in range(self.frames):
            ts = duration * (i + 1) / (self.frames + 1)
            frame = self._grab_frame(path, ts)
            if frame is not None:
                hashes.append(hash_to_int(imagehash.dhash(frame, hash_size=8)))

        if not hashes:
            return None
        return Fingerprint(structural=majority_vote(hashes))

    def _duration(self, path: Path) -> Optional[float]:
        try:
            mi = MediaInfo.parse(str(path))
        except Exception as e:
            logging.debug(f"MediaInfo failed for {path}: {e}")
            return None
        for track in mi.tracks:
            if track.track_type == "General" and getattr(track, "duration", None):
                # MediaInfo duration is in milliseconds
                return float(track.duration) / 1000.0
        return None

    def _grab_frame(self, path: Path, ts: float) -> Optional[Image.Image]:
        cmd = [
            self.ffmpeg, "-hide_banner", "-loglevel", "error",
            "-ss", f"{ts:.3f}", "-i", str(path),
            "-frames:v", "1", "-f", "image2pipe", "-vcodec", "png", "pipe:1",
        ]
        data = self._run(cmd, path)
        if not data:
            return None
        with Image.open(io.BytesIO(data)) as im:
            return im.convert("RGB")


class AudioPcmDecoder(_FfmpegDecoder):
    """xxHash64 of the first minute decoded to mono 8 kHz 16-bit PCM."""

    def decode(self, path: Path) -> Optional[Fingerprint]:
        if not self.available():
            logging.debug(f"ffmpeg not found; skipping audio fingerprint for {path}")
            return None

        cmd = [
            self.ffmpeg, "-hide_banner", "-loglevel", "error",
            "-i", str(path), "-t", str(config.AUDIO_MAX_SECONDS),
            "-f", "s16le", "-ac", "1", "-ar", str(config.AUDIO_SAMPLE_RATE), "pipe:1",
        ]
        pcm = self._run(cmd, path)
        if not pcm:
            return None
        return Fingerprint(structural=xxhash.xxh64(pcm).intdigest())


def default_decoders(ffmpeg: str = "ffmpeg") -> Dict[MediaType, MediaDecoder]:
    return {
        MediaType.IMAGE: ImageHashDecoder(),
        MediaType.VIDEO: VideoFrameDecoder(ffmpeg),
        MediaType.AUDIO: AudioPcmDecoder(ffmpeg),
    }
