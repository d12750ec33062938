"""
DupSweep: exact and perceptual duplicate detection for media libraries.
"""
from .core import ScanOrchestrator
from .models import DuplicateGroup, DuplicateType, FileEntry, MediaType, ScanConfig, ScanResult, ScanState

__version__ = "0.1.0"

__all__ = [
    "ScanOrchestrator",
    "ScanConfig",
    "ScanResult",
    "ScanState",
    "DuplicateGroup",
    "DuplicateType",
    "FileEntry",
    "MediaType",
]
