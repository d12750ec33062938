import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .detection.grouper import DuplicateGrouper
from .exceptions import ConfigurationError, ScanCancelledError, ScanInProgressError
from .media.adapter import PerceptualSignalAdapter
from .media.decoders import default_decoders, read_image_resolution
from .models import DuplicateGroup, FileEntry, MediaType, ScanConfig, ScanPhase, ScanProgress, ScanResult, ScanState
from .scanning.control import ScanController
from .scanning.filesystem import DirectoryEnumerator
from .scanning.hasher import FileHasher, HashCascade
from .scanning.parallel import ParallelExecutor

ProgressCallback = Callable[[ScanProgress], None]
ResolutionReader = Callable[[Path], Optional[Tuple[int, int]]]


class ScanOrchestrator:
    """
    Runs the whole detection pipeline for one scan at a time:
    1. Enumerate (streamed, filtered)
    2. Hash cascade (size -> quick hash -> full hash) and exact groups
    3. Fingerprint images/videos/audio and cluster them

    Each stage is a barrier: grouping for a media type starts only after
    every file of that type has been hashed or fingerprinted.
    """

    def __init__(self,
                 enumerator: Optional[DirectoryEnumerator] = None,
                 hasher: Optional[FileHasher] = None,
                 adapter: Optional[PerceptualSignalAdapter] = None,
                 grouper: Optional[DuplicateGrouper] = None,
                 executor: Optional[ParallelExecutor] = None,
                 resolution_reader: Optional[ResolutionReader] = None):
        self.enumerator = enumerator or DirectoryEnumerator()
        self.hasher = hasher or FileHasher()
        self.executor = executor or ParallelExecutor()
        self.cascade = HashCascade(self.hasher, self.executor)
        self.adapter = adapter or PerceptualSignalAdapter(default_decoders())
        self.grouper = grouper or DuplicateGrouper()
        self.resolution_reader = resolution_reader or read_image_resolution

        self._state_lock = threading.Lock()
        self._controller: Optional[ScanController] = None
        self._running = False
        self._progress: Optional[ProgressCallback] = None
        self._t0 = 0.0

    # --- Public control surface ---

    @property
    def state(self) -> ScanState:
        controller = self._controller
        return controller.state if controller else ScanState.IDLE

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        controller = self._controller
        return bool(controller and self._running and controller.is_paused)

    def pause(self):
        controller = self._controller
        if controller and self._running:
            controller.pause()

    def resume(self):
        controller = self._controller
        if controller and self._running:
            controller.resume()

    def cancel(self):
        controller = self._controller
        if controller and self._running:
            controller.cancel()

    def run(self,
            scan_config: ScanConfig,
            progress: Optional[ProgressCallback] = None,
            on_file_discovered: Optional[Callable[[Path], None]] = None) -> ScanResult:
        """Runs a scan on the calling thread and returns its result."""
        controller = self._claim(progress)
        return self._execute(scan_config, controller, on_file_discovered)

    def start(self,
              scan_config: ScanConfig,
              progress: Optional[ProgressCallback] = None,
              on_file_discovered: Optional[Callable[[Path], None]] = None) -> "Future[ScanResult]":
        """Runs a scan on a background thread. pause/resume/cancel work immediately."""
        controller = self._claim(progress)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dupsweep-scan")
        try:
            return pool.submit(self._execute, scan_config, controller, on_file_discovered)
        finally:
            pool.shutdown(wait=False)

    # --- Pipeline ---

    def _claim(self, progress: Optional[ProgressCallback]) -> ScanController:
        with self._state_lock:
            if self._running:
                raise ScanInProgressError("A scan is already running.")
            self._running = True
            self._controller = ScanController()
            self._progress = progress
            return self._controller

    def _execute(self, scan_config: ScanConfig, controller: ScanController,
                 on_file_discovered: Optional[Callable[[Path], None]]) -> ScanResult:
        result = ScanResult(config=scan_config)
        entries: List[FileEntry] = []
        self._t0 = time.perf_counter()
        self.hasher.reads.reset_peak()

        try:
            self._report(controller, ScanPhase.INITIALIZING)
            self._validate(scan_config)
            controller.machine.transition(ScanState.SCANNING)

            self._enumerate(scan_config, controller, on_file_discovered, entries)
            groups: List[DuplicateGroup] = []

            exact_enabled = scan_config.use_hash_comparison or scan_config.use_size_comparison
            if exact_enabled and scan_config.use_resolution_comparison:
                self._extract_resolutions(scan_config, controller, entries)

            if scan_config.use_hash_comparison:
                groups.extend(self._find_exact(scan_config, controller, entries))
            elif scan_config.use_size_comparison:
                groups.extend(self.grouper.find_size_matches(entries, scan_config))

            groups.extend(self._find_similar(scan_config, controller, entries, groups))

            result.groups = groups
            self._finish(controller)
            logging.info(f"Scan completed. Groups: {len(groups)}, Files: {len(entries)}")
            self._report(controller, ScanPhase.COMPLETED, len(entries), len(entries), groups=groups)

        except ConfigurationError as e:
            logging.error(f"Scan cannot start: {e}")
            controller.machine.try_transition(ScanState.FAULTED)
            result.error_message = str(e)
            self._report(controller, ScanPhase.ERROR)

        except ScanCancelledError:
            controller.machine.try_transition(ScanState.CANCELLED)
            result.error_message = "Scan cancelled."
            logging.warning(f"Scan cancelled after {len(entries)} files "
                            f"({controller.metrics.get('discovered')} discovered).")
            self._report(controller, ScanPhase.CANCELLED, len(entries))

        except Exception as e:
            logging.exception("Fatal error during scan.")
            controller.machine.try_transition(ScanState.FAULTED)
            result.error_message = str(e)
            self._report(controller, ScanPhase.ERROR)

        finally:
            controller.release()
            result.state = controller.state
            result.end_time = datetime.now()
            result.total_files_scanned = len(entries)
            result.metrics = controller.metrics.snapshot()
            result.metrics["peak_concurrent_reads"] = self.hasher.reads.peak
            with self._state_lock:
                self._running = False
                self._progress = None

        return result

    def _validate(self, scan_config: ScanConfig):
        if not scan_config.has_detection_mode():
            raise ConfigurationError("No detection modes are enabled.")
        if not self.enumerator.valid_roots(scan_config):
            raise ConfigurationError("No valid directories to scan.")

    def _enumerate(self, scan_config, controller, on_file_discovered, entries: List[FileEntry]):
        def discovered(path: Path):
            count = controller.metrics.increment("discovered")
            self._report(controller, ScanPhase.SCANNING, count, 0, str(path))
            if on_file_discovered is not None:
                on_file_discovered(path)

        # Filled in place so a cancelled scan still reports what it collected
        for entry in self.enumerator.scan(scan_config, controller, discovered):
            entries.append(entry)
        logging.info(f"Enumerated {len(entries)} candidate files.")

    def _find_exact(self, scan_config, controller, entries) -> List[DuplicateGroup]:
        self._report(controller, ScanPhase.HASHING, 0, len(entries))

        def hashed(entry: FileEntry, kind: str):
            done = controller.metrics.get("quick_hashed") + controller.metrics.get("full_hashed")
            self._report(controller, ScanPhase.HASHING, done, len(entries), str(entry.path))

        subset = entries
        if scan_config.use_resolution_comparison:
            subset = self.grouper.find_size_candidates(entries, scan_config)
            logging.info(f"{len(subset)} of {len(entries)} files share size and resolution")

        candidates = self.cascade.run(subset, controller, on_hashed=hashed, cap=scan_config.parallel_threads)
        controller.checkpoint()
        return self.grouper.find_exact_matches(candidates, scan_config)

    def _extract_resolutions(self, scan_config, controller, entries):
        images = [e for e in entries if e.media_type == MediaType.IMAGE]
        if not images:
            return
        logging.info(f"Reading dimensions of {len(images)} images")
        self._report(controller, ScanPhase.SCANNING, 0, len(images))

        def read(entry: FileEntry) -> bool:
            try:
                size = self.resolution_reader(entry.path)
            except Exception as e:
                logging.debug(f"No dimensions for {entry.path}: {e}")
                return False
            if not size:
                return False
            entry.width, entry.height = size
            return True

        def done(entry: FileEntry, ok: bool):
            count = controller.metrics.increment("resolutions_read")
            self._report(controller, ScanPhase.SCANNING, count, len(images), str(entry.path))

        self.executor.for_each(images, read, controller, on_done=done, cap=scan_config.parallel_threads)

    def _find_similar(self, scan_config, controller, entries, exact_groups) -> List[DuplicateGroup]:
        # Files already proven identical skip the perceptual stages
        excluded = {f.key for g in exact_groups for f in g.files}
        stages = [
            (MediaType.IMAGE, scan_config.scan_images and scan_config.use_image_similarity,
             scan_config.image_threshold, self.grouper.find_similar_images),
            (MediaType.VIDEO, scan_config.scan_videos and scan_config.use_video_similarity,
             scan_config.video_threshold, self.grouper.find_similar_videos),
            (MediaType.AUDIO, scan_config.scan_audio and scan_config.use_audio_similarity,
             scan_config.audio_threshold, self.grouper.find_similar_audio),
        ]

        groups: List[DuplicateGroup] = []
        for media_type, enabled, threshold, finder in stages:
            if not enabled:
                continue
            if media_type == MediaType.AUDIO and threshold > 100:
                logging.info("Audio threshold above 100; skipping audio comparison.")
                continue
            if not self.adapter.supports(media_type):
                logging.warning(f"No decoder registered for {media_type.value}; skipping similarity.")
                continue

            subset = [e for e in entries if e.media_type == media_type and e.key not in excluded]
            if not subset:
                continue

            logging.info(f"Fingerprinting {len(subset)} {media_type.value} files")
            self._report(controller, ScanPhase.FINGERPRINTING, 0, len(subset))

            def fingerprinted(entry: FileEntry, ok: bool, total=len(subset)):
                done = controller.metrics.increment("fingerprinted")
                if not ok:
                    controller.metrics.increment("failures")
                self._report(controller, ScanPhase.FINGERPRINTING, done, total, str(entry.path))

            self.executor.for_each(subset, self.adapter.apply, controller,
                                   on_done=fingerprinted, cap=scan_config.parallel_threads)

            controller.checkpoint()
            found = finder(subset, threshold)
            groups.extend(found)
            self._report(controller, ScanPhase.COMPARING, len(subset), len(subset),
                         groups=exact_groups + groups)
        return groups

    def _finish(self, controller: ScanController):
        # A pause can land between the last checkpoint and here
        while not controller.machine.try_transition(ScanState.COMPLETED):
            controller.checkpoint()

    def _report(self, controller: ScanController, phase: ScanPhase, processed: int = 0, total: int = 0,
                current: str = "", groups: Optional[List[DuplicateGroup]] = None):
        callback = self._progress
        if callback is None:
            return
        groups = groups or []
        callback(ScanProgress(
            phase=phase,
            processed=processed,
            total=total,
            current_file=current,
            groups_found=len(groups),
            potential_savings=sum(g.potential_savings for g in groups),
            elapsed=time.perf_counter() - self._t0,
            is_paused=controller.is_paused,
            is_cancelled=controller.is_cancelled,
        ))
