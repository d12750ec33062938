"""
Configuration constants for the duplicate scanner.
"""
import os
from pathlib import Path

# --- File Type Definitions ---
IMAGE_EXTS = {'.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp', '.tiff', '.ico', '.heic', '.heif'}
VIDEO_EXTS = {'.mp4', '.avi', '.mkv', '.mov', '.wmv', '.flv', '.webm', '.m4v', '.3gp'}
AUDIO_EXTS = {'.mp3', '.wav', '.flac', '.aac', '.ogg', '.wma', '.m4a', '.opus'}

# Extension to media type name. Resolved to MediaType in models.py.
EXT_TO_TYPE = {}
for ext in IMAGE_EXTS: EXT_TO_TYPE[ext] = 'image'
for ext in VIDEO_EXTS: EXT_TO_TYPE[ext] = 'video'
for ext in AUDIO_EXTS: EXT_TO_TYPE[ext] = 'audio'

# --- Hashing ---
QUICK_HASH_SIZE = 64 * 1024  # Prefix read for the tier 1 digest
HASH_CHUNK_SIZE = 1024 * 1024  # Streaming chunk for the tier 2 digest

# --- Similarity ---
FINGERPRINT_BITS = 64
DEFAULT_IMAGE_THRESHOLD = 85.0
DEFAULT_VIDEO_THRESHOLD = 85.0
DEFAULT_AUDIO_THRESHOLD = 100.0

# Empirical blend of structural and color similarity. Keep as-is.
STRUCTURAL_WEIGHT = 0.6
COLOR_WEIGHT = 0.4

# Image compatibility gates (min/max ratios of the two candidates)
MIN_FILE_SIZE_RATIO = 0.45
MIN_PIXEL_AREA_RATIO = 0.55
MIN_ASPECT_RATIO_RATIO = 0.7

# Secondary floors: structural >= max(70, t - 5), color >= max(55, t - 15)
STRUCTURAL_FLOOR = 70.0
STRUCTURAL_FLOOR_MARGIN = 5.0
COLOR_FLOOR = 55.0
COLOR_FLOOR_MARGIN = 15.0

# --- Parallelism ---
CPU_COUNT = os.cpu_count() or 1
SSD_IO_PARALLELISM = CPU_COUNT
HDD_IO_PARALLELISM = 2  # Rotating media: keep seeks sequential-ish
REMOVABLE_IO_PARALLELISM = 2
NETWORK_IO_PARALLELISM = 4
UNKNOWN_IO_PARALLELISM = 4

# Seconds between cancellation checks while blocked on the pause gate
PAUSE_POLL_INTERVAL = 0.1

# --- Media decoding ---
VIDEO_SAMPLE_FRAMES = 5
AUDIO_SAMPLE_RATE = 8000
AUDIO_MAX_SECONDS = 60
DECODER_TIMEOUT_SEC = 120

# --- Cache ---
DEFAULT_CACHE_PATH = Path.home() / ".cache" / "dupsweep" / "hashes.db"
