import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .exceptions import ConfigurationError


class MediaType(Enum):
    OTHER = "other"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"

    @classmethod
    def from_extension(cls, ext: str) -> "MediaType":
        return cls(config.EXT_TO_TYPE.get(ext.lower(), "other"))


class DuplicateType(Enum):
    EXACT_MATCH = "exact_match"      # Same full hash
    SIMILAR_IMAGE = "similar_image"  # Close structural/color fingerprints
    SIMILAR_VIDEO = "similar_video"  # Close sampled-frame fingerprints
    SIMILAR_AUDIO = "similar_audio"  # Equal audio fingerprints


class ScanState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAULTED = "faulted"


class ScanPhase(Enum):
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    HASHING = "hashing"
    FINGERPRINTING = "fingerprinting"
    COMPARING = "comparing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


def path_key(path) -> str:
    """Case-insensitive identity for a path, stable across platforms."""
    return os.path.normcase(os.path.normpath(str(path))).casefold()


def file_key(path) -> str:
    """Identity for a file path; case-folded only where the OS folds case."""
    return os.path.normcase(os.path.abspath(str(path)))


@dataclass
class FileEntry:
    """
    A candidate file found during a scan.

    Hash and fingerprint fields start empty and are filled in by the
    pipeline stages; an entry is treated as read-only once it has been
    published inside a DuplicateGroup.
    """
    path: Path
    size: int = 0
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    media_type: MediaType = MediaType.OTHER
    root: Optional[Path] = None

    # Tier 1 / tier 2 digests (None = not computed or unavailable)
    quick_hash: Optional[str] = None
    full_hash: Optional[str] = None

    # Perceptual signals supplied by external decoders (64-bit values)
    structural_fingerprint: Optional[int] = None
    color_fingerprint: Optional[int] = None
    audio_fingerprint: Optional[int] = None

    # Images only
    width: Optional[int] = None
    height: Optional[int] = None

    def __post_init__(self):
        self.path = Path(self.path)

    @classmethod
    def from_path(cls, path: Path, root: Optional[Path] = None, stat_result: Optional[os.stat_result] = None) -> "FileEntry":
        st = stat_result if stat_result is not None else os.stat(path)
        # st_birthtime exists on macOS/BSD/Windows; Linux only exposes ctime
        created_ts = getattr(st, "st_birthtime", None) or st.st_ctime
        return cls(
            path=Path(path),
            size=st.st_size,
            created=datetime.fromtimestamp(created_ts),
            modified=datetime.fromtimestamp(st.st_mtime),
            media_type=MediaType.from_extension(Path(path).suffix),
            root=root,
        )

    @property
    def key(self) -> str:
        return file_key(self.path)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    @property
    def resolution(self) -> str:
        if self.width and self.height:
            return f"{self.width}x{self.height}"
        return "-"

    @property
    def formatted_size(self) -> str:
        units = ["B", "KB", "MB", "GB", "TB"]
        size = float(self.size)
        order = 0
        while size >= 1024 and order < len(units) - 1:
            order += 1
            size /= 1024
        return f"{size:.2f}".rstrip("0").rstrip(".") + f" {units[order]}"


@dataclass(frozen=True)
class ScanConfig:
    """Immutable settings for a single scan."""
    directories: Tuple[str, ...] = ()
    recursive: bool = True
    include_hidden: bool = False
    follow_symlinks: bool = False
    min_size: int = 0
    max_size: Optional[int] = None

    # Which media types are enumerated
    scan_images: bool = True
    scan_videos: bool = True
    scan_audio: bool = False

    # Detection modes
    use_hash_comparison: bool = True
    use_image_similarity: bool = True
    use_video_similarity: bool = True
    use_audio_similarity: bool = False
    # Without hashing, equal-size files are reported as exact matches
    use_size_comparison: bool = False
    # Exact-match candidates must also share pixel dimensions
    use_resolution_comparison: bool = False

    match_created_date: bool = False
    match_modified_date: bool = False

    image_threshold: float = config.DEFAULT_IMAGE_THRESHOLD
    video_threshold: float = config.DEFAULT_VIDEO_THRESHOLD
    audio_threshold: float = config.DEFAULT_AUDIO_THRESHOLD

    # Optional cap on top of the device-adaptive worker count
    parallel_threads: Optional[int] = None

    def __post_init__(self):
        seen = set()
        roots: List[str] = []
        for d in self.directories:
            if d is None or not str(d).strip():
                continue
            k = path_key(d)
            if k in seen:
                continue
            seen.add(k)
            roots.append(str(d))
        object.__setattr__(self, "directories", tuple(roots))

        for name in ("image_threshold", "video_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be within 0-100, got {value}")
        if self.audio_threshold < 0:
            raise ConfigurationError(f"audio_threshold must be >= 0, got {self.audio_threshold}")
        if self.min_size < 0 or (self.max_size is not None and self.max_size < self.min_size):
            raise ConfigurationError(f"Invalid size bounds: {self.min_size}..{self.max_size}")
        if self.parallel_threads is not None and self.parallel_threads < 1:
            raise ConfigurationError("parallel_threads must be at least 1")

    def supported_extensions(self) -> set:
        exts = set()
        if self.scan_images:
            exts |= config.IMAGE_EXTS
        if self.scan_videos:
            exts |= config.VIDEO_EXTS
        if self.scan_audio:
            exts |= config.AUDIO_EXTS
        return {e.lower() for e in exts}

    def has_detection_mode(self) -> bool:
        return (
            self.use_hash_comparison
            or self.use_size_comparison
            or (self.use_image_similarity and self.scan_images)
            or (self.use_video_similarity and self.scan_videos)
            or (self.use_audio_similarity and self.scan_audio)
        )


@dataclass(frozen=True)
class DuplicateGroup:
    """
    A finalized cluster of two or more files. Groups are built only by the
    grouper and are never mutated after emission.
    """
    type: DuplicateType
    files: Tuple[FileEntry, ...]
    similarity: float = 100.0
    group_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        members = tuple(self.files)
        if len(members) < 2:
            raise ValueError(f"A duplicate group needs at least 2 files, got {len(members)}")
        object.__setattr__(self, "files", members)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    @property
    def potential_savings(self) -> int:
        return sum(f.size for f in self.files[1:])

    def oldest(self) -> FileEntry:
        return min(self.files, key=lambda f: f.created or datetime.max)

    def newest(self) -> FileEntry:
        return max(self.files, key=lambda f: f.modified or datetime.min)

    def smallest(self) -> FileEntry:
        return min(self.files, key=lambda f: f.size)

    def largest(self) -> FileEntry:
        return max(self.files, key=lambda f: f.size)


@dataclass
class ScanProgress:
    phase: ScanPhase
    processed: int = 0
    total: int = 0
    current_file: str = ""
    groups_found: int = 0
    potential_savings: int = 0
    elapsed: float = 0.0
    is_paused: bool = False
    is_cancelled: bool = False

    @property
    def percentage(self) -> float:
        return self.processed / self.total * 100 if self.total > 0 else 0.0


@dataclass
class ScanResult:
    config: ScanConfig
    scan_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    groups: List[DuplicateGroup] = field(default_factory=list)
    total_files_scanned: int = 0
    state: ScanState = ScanState.IDLE
    error_message: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def is_successful(self) -> bool:
        return self.state == ScanState.COMPLETED

    @property
    def total_duplicates(self) -> int:
        return sum(g.file_count - 1 for g in self.groups)

    @property
    def total_potential_savings(self) -> int:
        return sum(g.potential_savings for g in self.groups)

    def groups_of(self, group_type: DuplicateType) -> List[DuplicateGroup]:
        return [g for g in self.groups if g.type == group_type]

    def exact_matches(self) -> List[DuplicateGroup]:
        return self.groups_of(DuplicateType.EXACT_MATCH)

    def similar_images(self) -> List[DuplicateGroup]:
        return self.groups_of(DuplicateType.SIMILAR_IMAGE)

    def similar_videos(self) -> List[DuplicateGroup]:
        return self.groups_of(DuplicateType.SIMILAR_VIDEO)

    def similar_audio(self) -> List[DuplicateGroup]:
        return self.groups_of(DuplicateType.SIMILAR_AUDIO)
