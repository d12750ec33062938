import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from ..exceptions import ScanCancelledError
from ..models import FileEntry, path_key
from .control import ScanController
from .storage import ParallelOptions, StorageClassifier, StorageType

T = TypeVar("T")


class ParallelExecutor:
    """
    Runs a per-file body over entries with a pool sized per scan root.

    Roots are processed one after another so a slow spinning disk never
    shares its pool with an SSD root. Each task passes the controller
    checkpoint before touching its file.
    """

    def __init__(self,
                 classifier: Optional[StorageClassifier] = None,
                 options: Optional[ParallelOptions] = None):
        self.classifier = classifier or StorageClassifier()
        self.options = options or ParallelOptions()
        self._root_types: Dict[str, StorageType] = {}

    def storage_type_for(self, root: Optional[Path]) -> StorageType:
        if root is None:
            return StorageType.UNKNOWN
        k = path_key(root)
        if k not in self._root_types:
            self._root_types[k] = self.classifier.classify(root)
        return self._root_types[k]

    def parallelism_for(self, root: Optional[Path], cap: Optional[int] = None) -> int:
        workers = self.options.parallelism_for(self.storage_type_for(root))
        if cap is not None:
            workers = min(workers, cap)
        return max(1, workers)

    def for_each(self,
                 entries: Iterable[FileEntry],
                 body: Callable[[FileEntry], T],
                 controller: ScanController,
                 on_done: Optional[Callable[[FileEntry, T], None]] = None,
                 cap: Optional[int] = None) -> None:
        """
        Applies ``body`` to every entry. Returns once all entries finished
        (the barrier grouping relies on). Raises ScanCancelledError if the
        scan is cancelled; pending tasks are dropped.
        """
        by_root: Dict[Optional[Path], List[FileEntry]] = defaultdict(list)
        for entry in entries:
            by_root[entry.root].append(entry)

        for root, batch in by_root.items():
            controller.checkpoint()
            workers = self.parallelism_for(root, cap)
            logging.info(f"Processing {len(batch)} files under {root} "
                         f"({self.storage_type_for(root).value}, {workers} workers)")
            self._run_batch(batch, body, controller, on_done, workers)

    def _run_batch(self, batch, body, controller, on_done, workers):
        def guarded(entry: FileEntry):
            controller.checkpoint()
            return body(entry)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dupsweep") as pool:
            future_to_entry = {pool.submit(guarded, e): e for e in batch}
            try:
                for future in as_completed(future_to_entry):
                    result = future.result()
                    if on_done is not None:
                        on_done(future_to_entry[future], result)
            except ScanCancelledError:
                for f in future_to_entry:
                    f.cancel()
                raise
