"""
Storage-type detection used to size the worker pool per scan root.
"""
import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from .. import config


class StorageType(Enum):
    SSD = "ssd"
    HDD = "hdd"
    NETWORK = "network"
    REMOVABLE = "removable"
    UNKNOWN = "unknown"


@dataclass
class ParallelOptions:
    """Worker counts per storage class. ``max_parallelism`` caps all of them."""
    ssd: int = config.SSD_IO_PARALLELISM
    hdd: int = config.HDD_IO_PARALLELISM
    removable: int = config.REMOVABLE_IO_PARALLELISM
    network: int = config.NETWORK_IO_PARALLELISM
    unknown: int = config.UNKNOWN_IO_PARALLELISM
    max_parallelism: Optional[int] = None

    def parallelism_for(self, storage_type: StorageType) -> int:
        mapping = {
            StorageType.SSD: self.ssd,
            StorageType.HDD: self.hdd,
            StorageType.REMOVABLE: self.removable,
            StorageType.NETWORK: self.network,
            StorageType.UNKNOWN: self.unknown,
        }
        workers = mapping[storage_type]
        if self.max_parallelism is not None:
            workers = min(workers, self.max_parallelism)
        return max(1, workers)


class StorageClassifier:
    """
    Classifies the medium behind a path.

    Linux only: the device number from ``os.stat`` is resolved through
    ``/sys/dev/block/<major>:<minor>``; partitions are walked up to their
    disk, whose ``queue/rotational`` flag tells SSD from HDD. Other
    platforms report UNKNOWN (network shares excepted).
    """

    def __init__(self, sysfs_root: Path = Path("/sys")):
        self.sysfs_root = Path(sysfs_root)
        self._cache: Dict[Tuple[int, int], StorageType] = {}
        self._lock = threading.Lock()

    def classify(self, path: Path) -> StorageType:
        text = str(path)
        if text.startswith("\\\\") or text.startswith("//"):
            return StorageType.NETWORK
        if not hasattr(os, "major"):
            return StorageType.UNKNOWN

        try:
            st_dev = os.stat(path).st_dev
        except OSError as e:
            logging.debug(f"Storage detection failed for {path}: {e}")
            return StorageType.UNKNOWN

        device = (os.major(st_dev), os.minor(st_dev))
        with self._lock:
            cached = self._cache.get(device)
        if cached is not None:
            return cached

        result = self._classify_device(*device)
        with self._lock:
            self._cache[device] = result
        logging.debug(f"Storage for {path} (device {device[0]}:{device[1]}): {result.value}")
        return result

    def _classify_device(self, major: int, minor: int) -> StorageType:
        if major == 0:
            # Anonymous devices: tmpfs, overlayfs, NFS/CIFS mounts
            return StorageType.UNKNOWN

        link = self.sysfs_root / "dev" / "block" / f"{major}:{minor}"
        try:
            disk = Path(os.path.realpath(link))
            if (disk / "partition").exists():
                disk = disk.parent

            removable = disk / "removable"
            if removable.exists() and removable.read_text().strip() == "1":
                return StorageType.REMOVABLE

            rotational = disk / "queue" / "rotational"
            if not rotational.exists():
                return StorageType.UNKNOWN
            return StorageType.HDD if rotational.read_text().strip() == "1" else StorageType.SSD
        except OSError as e:
            logging.debug(f"Could not read sysfs entry {link}: {e}")
            return StorageType.UNKNOWN
