import argparse
import logging
import sqlite3
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from . import config
from .core import ScanOrchestrator
from .database.db import DBManager
from .database.ops import HashCache
from .exceptions import ConfigurationError
from .models import ScanConfig, ScanPhase, ScanProgress, ScanState
from .reporting import ReportGenerator
from .scanning.hasher import FileHasher

EXIT_OK = 0
EXIT_FAULT = 1
EXIT_CANCELLED = 130


def setup_logging(log_file: Optional[Path], verbose: bool):
    """Sets up logging to the console and, optionally, a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("PIL").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="DupSweep: find exact and near-duplicate media files")

    p.add_argument("dirs", nargs="+", help="Directories to scan")

    p.add_argument("--no-recursive", action="store_true", help="Only scan the top level of each directory")
    p.add_argument("--include-hidden", action="store_true", help="Include hidden files and folders")
    p.add_argument("--follow-symlinks", action="store_true", help="Follow symlinks and reparse points")
    p.add_argument("--min-size", type=int, default=0, help="Skip files smaller than this (bytes)")
    p.add_argument("--max-size", type=int, default=None, help="Skip files larger than this (bytes)")

    p.add_argument("--no-images", action="store_true", help="Do not scan image files")
    p.add_argument("--no-videos", action="store_true", help="Do not scan video files")
    p.add_argument("--audio", action="store_true", help="Scan audio files and compare their fingerprints")

    p.add_argument("--no-hash", action="store_true", help="Disable exact (content hash) matching")
    p.add_argument("--no-image-similarity", action="store_true", help="Disable perceptual image matching")
    p.add_argument("--no-video-similarity", action="store_true", help="Disable perceptual video matching")
    p.add_argument("--match-created", action="store_true", help="Exact matches must share a creation time")
    p.add_argument("--match-modified", action="store_true", help="Exact matches must share a modification time")
    p.add_argument("--size-match", action="store_true",
                   help="With --no-hash, report files of equal size as exact matches")
    p.add_argument("--match-resolution", action="store_true",
                   help="Exact-match candidates must also share image dimensions")

    p.add_argument("--image-threshold", type=float, default=config.DEFAULT_IMAGE_THRESHOLD)
    p.add_argument("--video-threshold", type=float, default=config.DEFAULT_VIDEO_THRESHOLD)
    p.add_argument("--audio-threshold", type=float, default=config.DEFAULT_AUDIO_THRESHOLD)
    p.add_argument("--threads", type=int, default=None, help="Upper bound on worker threads per root")

    p.add_argument("--cache", type=Path, default=config.DEFAULT_CACHE_PATH, help="SQLite hash cache path")
    p.add_argument("--no-cache", action="store_true", help="Do not read or write the hash cache")
    p.add_argument("--clear-cache", action="store_true", help="Empty the hash cache before scanning")

    p.add_argument("--report-csv", type=Path, default=None, help="Write duplicate groups to this CSV")
    p.add_argument("--log-file", type=Path, default=None, help="Also log to this file")
    p.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)


def build_config(args) -> ScanConfig:
    return ScanConfig(
        directories=tuple(args.dirs),
        recursive=not args.no_recursive,
        include_hidden=args.include_hidden,
        follow_symlinks=args.follow_symlinks,
        min_size=args.min_size,
        max_size=args.max_size,
        scan_images=not args.no_images,
        scan_videos=not args.no_videos,
        scan_audio=args.audio,
        use_hash_comparison=not args.no_hash,
        use_image_similarity=not args.no_image_similarity,
        use_video_similarity=not args.no_video_similarity,
        use_audio_similarity=args.audio,
        use_size_comparison=args.size_match,
        use_resolution_comparison=args.match_resolution,
        match_created_date=args.match_created,
        match_modified_date=args.match_modified,
        image_threshold=args.image_threshold,
        video_threshold=args.video_threshold,
        audio_threshold=args.audio_threshold,
        parallel_threads=args.threads,
    )


class ProgressBar:
    """Feeds ScanProgress updates into a tqdm bar, one bar segment per phase."""

    def __init__(self, disable: bool = False):
        self.bar = tqdm(total=0, unit="file", disable=disable)
        self.phase: Optional[ScanPhase] = None

    def __call__(self, progress: ScanProgress):
        if progress.phase != self.phase:
            self.phase = progress.phase
            self.bar.reset(total=progress.total or None)
            self.bar.set_description(progress.phase.value)
        if progress.total and self.bar.total != progress.total:
            self.bar.total = progress.total
        self.bar.n = progress.processed
        self.bar.set_postfix(groups=progress.groups_found, refresh=False)
        self.bar.refresh()

    def close(self):
        self.bar.close()


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_file, args.verbose)

    logging.info("=== DupSweep Started ===")

    try:
        scan_config = build_config(args)
    except ConfigurationError as e:
        logging.error(f"Invalid options: {e}")
        return EXIT_FAULT

    manager = None
    cache = None
    if not args.no_cache:
        try:
            manager = DBManager(args.cache)
            manager.connect()
            cache = HashCache(manager)
            if args.clear_cache:
                cache.clear()
        except (OSError, sqlite3.Error) as e:
            logging.warning(f"Hash cache unavailable ({e}); scanning without it.")
            if manager is not None:
                manager.close()
            manager = None
            cache = None

    orchestrator = ScanOrchestrator(hasher=FileHasher(cache=cache))
    bar = ProgressBar(disable=args.no_progress)

    try:
        future = orchestrator.start(scan_config, progress=bar)
        try:
            result = future.result()
        except KeyboardInterrupt:
            logging.warning("Cancelling scan...")
            orchestrator.cancel()
            result = future.result()
    finally:
        bar.close()
        if manager is not None:
            manager.close()

    for line in ReportGenerator().summarize(result):
        logging.info(line)

    if args.report_csv and result.groups:
        ReportGenerator().write_group_report(result.groups, args.report_csv)

    if result.state == ScanState.CANCELLED:
        return EXIT_CANCELLED
    if result.state != ScanState.COMPLETED:
        return EXIT_FAULT
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
