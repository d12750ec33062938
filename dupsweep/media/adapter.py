import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

from ..models import FileEntry, MediaType


@dataclass(frozen=True)
class Fingerprint:
    """Decoder output. Every value is a 64-bit integer or None."""
    structural: Optional[int]
    color: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None


class MediaDecoder(Protocol):
    def decode(self, path: Path) -> Optional[Fingerprint]:
        ...


class PerceptualSignalAdapter:
    """
    Boundary to the media decoders. Copies their fingerprint values onto
    entries; no decoding logic lives here. A decoder returning None or
    raising marks the fingerprint unavailable for that one file.
    """

    def __init__(self, decoders: Optional[Dict[MediaType, MediaDecoder]] = None):
        self.decoders: Dict[MediaType, MediaDecoder] = dict(decoders or {})

    def supports(self, media_type: MediaType) -> bool:
        return media_type in self.decoders

    def apply(self, entry: FileEntry) -> bool:
        """Returns True when the entry received a usable fingerprint."""
        decoder = self.decoders.get(entry.media_type)
        if decoder is None:
            return False

        t0 = time.perf_counter()
        try:
            fp = decoder.decode(entry.path)
        except Exception as e:
            logging.warning(f"Fingerprint failed for {entry.path}: {e}")
            return False
        logging.debug(f"Fingerprint {entry.path} took {time.perf_counter() - t0:.4f}s")

        if fp is None or fp.structural is None:
            logging.debug(f"No fingerprint available for {entry.path}")
            return False

        if entry.media_type == MediaType.AUDIO:
            entry.audio_fingerprint = fp.structural
            return True

        entry.structural_fingerprint = fp.structural
        entry.color_fingerprint = fp.color
        if entry.media_type == MediaType.IMAGE:
            entry.width = fp.width
            entry.height = fp.height
        return True
