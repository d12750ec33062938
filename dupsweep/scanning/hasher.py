import hashlib
import logging
import time
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import xxhash

from .. import config
from ..models import FileEntry
from .control import ActivityCounter, ScanController
from .parallel import ParallelExecutor


class FileHasher:
    """
    Two digests per file, both nullable:

    1. Quick hash: xxHash64 of the first 64 KiB. Only a pre-filter key.
    2. Full hash: SHA-256 of the whole file. The identity proxy for exact
       matches, computed only when the quick hash collides.

    Read failures (locked, vanished, unreadable) leave the hash as None.
    """

    def __init__(self, cache=None, reads: Optional[ActivityCounter] = None):
        self.cache = cache
        self.reads = reads or ActivityCounter()

    def compute_quick_hash(self, path: Path) -> str:
        """Reads at most QUICK_HASH_SIZE bytes."""
        with self.reads, open(path, 'rb') as f:
            data = f.read(config.QUICK_HASH_SIZE)
        return xxhash.xxh64(data).hexdigest()

    def compute_full_hash(self, path: Path) -> str:
        """Reads entire file. High I/O cost."""
        h = hashlib.sha256()
        with self.reads, open(path, 'rb') as f:
            while chunk := f.read(config.HASH_CHUNK_SIZE):
                h.update(chunk)
        return h.hexdigest()

    def quick_hash(self, entry: FileEntry) -> Optional[str]:
        entry.quick_hash = self._hash_entry(entry, "quick", self.compute_quick_hash)
        return entry.quick_hash

    def full_hash(self, entry: FileEntry) -> Optional[str]:
        entry.full_hash = self._hash_entry(entry, "full", self.compute_full_hash)
        return entry.full_hash

    def _hash_entry(self, entry: FileEntry, kind: str, compute) -> Optional[str]:
        mtime = entry.modified.timestamp() if entry.modified else 0.0

        if self.cache is not None:
            cached = self.cache.lookup(kind, entry.path, entry.size, mtime)
            if cached:
                logging.debug(f"{kind} hash cache hit: {entry.path}")
                return cached

        t0 = time.perf_counter()
        try:
            value = compute(entry.path)
        except OSError as e:
            logging.warning(f"{kind} hash failed for {entry.path}: {e}")
            return None
        logging.debug(f"{kind} hash {entry.path} took {time.perf_counter() - t0:.4f}s")

        if self.cache is not None:
            self.cache.store(kind, entry.path, entry.size, mtime, value)
        return value


def find_size_collisions(entries: List[FileEntry]) -> List[FileEntry]:
    """Keeps files whose byte size is shared with at least one other file."""
    buckets: Dict[int, List[FileEntry]] = defaultdict(list)
    for e in entries:
        buckets[e.size].append(e)
    return [e for e in entries if len(buckets[e.size]) > 1]


def find_quick_hash_collisions(entries: List[FileEntry]) -> List[FileEntry]:
    """Keeps files whose (size, quick hash) is shared with another file."""
    buckets: Dict[Tuple[int, str], List[FileEntry]] = defaultdict(list)
    for e in entries:
        if e.quick_hash and e.quick_hash.strip():
            buckets[(e.size, e.quick_hash.lower())].append(e)
    return [
        e for e in entries
        if e.quick_hash and e.quick_hash.strip() and len(buckets[(e.size, e.quick_hash.lower())]) > 1
    ]


class HashCascade:
    """
    Tier 1 for every size-collision candidate, tier 2 only where tier 1
    collides. Returns the tier 2 candidates (with full_hash populated or
    None on failure) for exact-match grouping.
    """

    def __init__(self, hasher: FileHasher, executor: ParallelExecutor):
        self.hasher = hasher
        self.executor = executor

    def run(self,
            entries: List[FileEntry],
            controller: ScanController,
            on_hashed=None,
            cap: Optional[int] = None) -> List[FileEntry]:
        metrics = controller.metrics

        size_candidates = find_size_collisions(entries)
        logging.info(f"Quick hashing {len(size_candidates)} of {len(entries)} files (size collisions)")

        def tier1_done(entry, value):
            metrics.increment("quick_hashed")
            if value is None:
                metrics.increment("failures")
            if on_hashed is not None:
                on_hashed(entry, "quick")

        self.executor.for_each(size_candidates, self.hasher.quick_hash, controller, on_done=tier1_done, cap=cap)

        quick_candidates = find_quick_hash_collisions(size_candidates)
        logging.info(f"Full hashing {len(quick_candidates)} files (quick hash collisions)")

        def tier2_done(entry, value):
            metrics.increment("full_hashed")
            if value is None:
                metrics.increment("failures")
            if on_hashed is not None:
                on_hashed(entry, "full")

        self.executor.for_each(quick_candidates, self.hasher.full_hash, controller, on_done=tier2_done, cap=cap)
        return quick_candidates
