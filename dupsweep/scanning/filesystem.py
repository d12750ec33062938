import logging
import os
import stat
from pathlib import Path
from typing import Callable, Hashable, Iterator, List, Optional, Set

from ..models import FileEntry, ScanConfig, file_key, path_key
from .control import ScanController

# Windows attribute bits; st_file_attributes is absent elsewhere
_HIDDEN = getattr(stat, "FILE_ATTRIBUTE_HIDDEN", 0x2)
_SYSTEM = getattr(stat, "FILE_ATTRIBUTE_SYSTEM", 0x4)
_REPARSE_POINT = getattr(stat, "FILE_ATTRIBUTE_REPARSE_POINT", 0x400)


class DirectoryEnumerator:
    """
    Streams candidate files from the configured roots.

    Nothing is collected up front: each accepted file is yielded as soon as
    it is seen, so downstream stages start while the walk is still running.
    """

    def scan(self,
             scan_config: ScanConfig,
             controller: Optional[ScanController] = None,
             on_file_discovered: Optional[Callable[[Path], None]] = None) -> Iterator[FileEntry]:
        extensions = scan_config.supported_extensions()
        # Nested or aliased roots reach the same file more than once
        seen: Set[Hashable] = set()

        for root in self.valid_roots(scan_config):
            logging.info(f"Enumerating {root}")
            real_root = os.path.realpath(root)
            for path, st in self._iter_files(root, scan_config):
                if controller is not None:
                    controller.checkpoint()

                identity = self._identity(path, st, root, real_root, scan_config)
                if identity in seen:
                    logging.debug(f"Skipping {path}: already enumerated from another root")
                    continue
                seen.add(identity)

                if on_file_discovered is not None:
                    on_file_discovered(path)

                if st.st_size < scan_config.min_size:
                    continue
                if scan_config.max_size is not None and st.st_size > scan_config.max_size:
                    continue
                if extensions and path.suffix.lower() not in extensions:
                    continue

                try:
                    yield FileEntry.from_path(path, root=root, stat_result=st)
                except (OSError, ValueError) as e:
                    logging.warning(f"Skipping {path}: metadata unavailable ({e})")

    @staticmethod
    def _identity(path: Path, st: os.stat_result, root: Path, real_root: str,
                  scan_config: ScanConfig) -> Hashable:
        # Followed links can alias one inode under several names
        if scan_config.follow_symlinks and st.st_ino:
            return (st.st_dev, st.st_ino)
        return file_key(os.path.join(real_root, os.path.relpath(path, root)))

    def valid_roots(self, scan_config: ScanConfig) -> List[Path]:
        """Configured roots that exist, deduplicated case-insensitively."""
        roots: List[Path] = []
        seen: Set[str] = set()
        for d in scan_config.directories:
            p = Path(d).expanduser()
            k = path_key(p)
            if k in seen:
                continue
            seen.add(k)
            if not p.is_dir():
                logging.warning(f"Scan root does not exist or is not a directory: {p}")
                continue
            roots.append(p)
        return roots

    def _iter_files(self, root: Path, scan_config: ScanConfig) -> Iterator[tuple]:
        """Depth-first walker using os.scandir. Yields (path, stat_result)."""
        stack = [root]
        visited_dirs: Set[str] = set()
        while stack:
            current = stack.pop()

            if scan_config.follow_symlinks:
                # Guard against link cycles
                real = path_key(os.path.realpath(current))
                if real in visited_dirs:
                    continue
                visited_dirs.add(real)

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Cannot enumerate {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                try:
                    if self._is_excluded(e, scan_config):
                        continue
                    if e.is_dir(follow_symlinks=scan_config.follow_symlinks):
                        dirs.append(Path(e.path))
                    elif e.is_file(follow_symlinks=scan_config.follow_symlinks):
                        files.append((Path(e.path), e.stat(follow_symlinks=scan_config.follow_symlinks)))
                except OSError as e_err:
                    logging.warning(f"Skipping {e.path}: {e_err}")

            if scan_config.recursive:
                # Push dirs to stack (reversed so we process A before Z)
                for d in reversed(dirs):
                    stack.append(d)

            for f in files:
                yield f

    def _is_excluded(self, entry: os.DirEntry, scan_config: ScanConfig) -> bool:
        attrs = getattr(entry.stat(follow_symlinks=False), "st_file_attributes", 0)

        if attrs & _SYSTEM:
            return True
        if not scan_config.include_hidden and (entry.name.startswith(".") or attrs & _HIDDEN):
            return True
        if not scan_config.follow_symlinks and (entry.is_symlink() or attrs & _REPARSE_POINT):
            return True
        return False
