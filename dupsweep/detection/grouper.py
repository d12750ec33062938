import logging
from collections import defaultdict
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Set

from .. import config
from ..models import DuplicateGroup, DuplicateType, FileEntry, MediaType, ScanConfig
from .similarity import combined_similarity, similarity_percent


def _split_by(groups: List[List[FileEntry]], key: Callable[[FileEntry], Hashable]) -> List[List[FileEntry]]:
    """Splits every group by ``key``; sub-groups of one are dropped."""
    out: List[List[FileEntry]] = []
    for group in groups:
        parts: Dict[Hashable, List[FileEntry]] = defaultdict(list)
        for f in group:
            parts[key(f)].append(f)
        out.extend(p for p in parts.values() if len(p) > 1)
    return out


def _ratio(a: float, b: float) -> float:
    lo, hi = min(a, b), max(a, b)
    return 1.0 if hi <= 0 else lo / hi


def images_compatible(a: FileEntry, b: FileEntry) -> bool:
    """
    Rejects pairs that cannot be the same picture even when their hashes
    happen to be close: very different byte sizes, pixel areas or shapes.
    Pixel checks only apply when both sides know their dimensions.
    """
    if _ratio(a.size, b.size) < config.MIN_FILE_SIZE_RATIO:
        return False

    if a.width and a.height and b.width and b.height:
        if _ratio(a.width * a.height, b.width * b.height) < config.MIN_PIXEL_AREA_RATIO:
            return False
        if _ratio(a.width / a.height, b.width / b.height) < config.MIN_ASPECT_RATIO_RATIO:
            return False
    return True


class DuplicateGrouper:
    """
    Turns hashed/fingerprinted entries into DuplicateGroups.

    Every method is single-threaded and runs after the stage feeding it has
    finished for the whole candidate set.
    """

    def find_exact_matches(self, files: Iterable[FileEntry], scan_config: ScanConfig) -> List[DuplicateGroup]:
        partitions: Dict[str, List[FileEntry]] = defaultdict(list)
        for f in files:
            if f.full_hash is None or not f.full_hash.strip():
                continue
            partitions[f.full_hash.strip().lower()].append(f)

        result = self._exact_groups(partitions.values(), scan_config)
        logging.info(f"Exact matches: {len(result)} groups")
        return result

    def find_size_candidates(self, files: Iterable[FileEntry], scan_config: ScanConfig) -> List[FileEntry]:
        """Entries sharing their size (and pixel dimensions, when enabled) with another entry."""
        return [f for p in self._size_partitions(files, scan_config) if len(p) > 1 for f in p]

    def find_size_matches(self, files: Iterable[FileEntry], scan_config: ScanConfig) -> List[DuplicateGroup]:
        """Exact matches by size alone, for scans that never read file contents."""
        result = self._exact_groups(self._size_partitions(files, scan_config), scan_config)
        logging.info(f"Size matches: {len(result)} groups")
        return result

    def _size_partitions(self, files: Iterable[FileEntry], scan_config: ScanConfig) -> List[List[FileEntry]]:
        partitions: Dict[Hashable, List[FileEntry]] = defaultdict(list)
        for f in files:
            if scan_config.use_resolution_comparison:
                partitions[(f.size, f.width, f.height)].append(f)
            else:
                partitions[f.size].append(f)
        return list(partitions.values())

    def _exact_groups(self, partitions: Iterable[List[FileEntry]], scan_config: ScanConfig) -> List[DuplicateGroup]:
        groups = [p for p in partitions if len(p) > 1]

        # Date filters chain: created first, then modified
        if scan_config.match_created_date:
            groups = _split_by(groups, lambda f: f.created)
        if scan_config.match_modified_date:
            groups = _split_by(groups, lambda f: f.modified)

        return [DuplicateGroup(type=DuplicateType.EXACT_MATCH, files=tuple(g), similarity=100.0) for g in groups]

    def find_similar_images(self, files: Iterable[FileEntry], threshold: float) -> List[DuplicateGroup]:
        candidates = [f for f in files if f.media_type == MediaType.IMAGE and f.structural_fingerprint is not None]
        groups = self._cluster(candidates, threshold, DuplicateType.SIMILAR_IMAGE, gate=images_compatible)
        logging.info(f"Similar images: {len(groups)} groups from {len(candidates)} candidates")
        return groups

    def find_similar_videos(self, files: Iterable[FileEntry], threshold: float) -> List[DuplicateGroup]:
        candidates = [f for f in files if f.media_type == MediaType.VIDEO and f.structural_fingerprint is not None]
        groups = self._cluster(candidates, threshold, DuplicateType.SIMILAR_VIDEO, gate=None)
        logging.info(f"Similar videos: {len(groups)} groups from {len(candidates)} candidates")
        return groups

    def find_similar_audio(self, files: Iterable[FileEntry], threshold: float) -> List[DuplicateGroup]:
        # Fingerprint equality is a 100% match; nothing can clear a higher bar
        if threshold > 100:
            return []

        partitions: Dict[int, List[FileEntry]] = defaultdict(list)
        for f in files:
            if f.media_type == MediaType.AUDIO and f.audio_fingerprint is not None:
                partitions[f.audio_fingerprint].append(f)

        groups = [
            DuplicateGroup(type=DuplicateType.SIMILAR_AUDIO, files=tuple(p), similarity=100.0)
            for p in partitions.values() if len(p) > 1
        ]
        logging.info(f"Similar audio: {len(groups)} groups")
        return groups

    def _cluster(self,
                 candidates: Sequence[FileEntry],
                 threshold: float,
                 group_type: DuplicateType,
                 gate: Optional[Callable[[FileEntry, FileEntry], bool]]) -> List[DuplicateGroup]:
        """
        Seed-based greedy clustering in discovery order.

        Members are judged against the seed only, so two members of one
        group need not be similar to each other. Candidates are addressed
        by index; ``visited`` holds indices, never object identities.
        """
        structural_floor = max(config.STRUCTURAL_FLOOR, threshold - config.STRUCTURAL_FLOOR_MARGIN)
        color_floor = max(config.COLOR_FLOOR, threshold - config.COLOR_FLOOR_MARGIN)

        visited: Set[int] = set()
        groups: List[DuplicateGroup] = []

        for i, seed in enumerate(candidates):
            if i in visited:
                continue

            members = [seed]
            member_indices = []
            total = 100.0
            comparisons = 1

            for j in range(i + 1, len(candidates)):
                if j in visited:
                    continue
                other = candidates[j]

                if gate is not None and not gate(seed, other):
                    continue

                structural = similarity_percent(seed.structural_fingerprint, other.structural_fingerprint)
                if structural < structural_floor:
                    continue

                has_color = seed.color_fingerprint is not None and other.color_fingerprint is not None
                if has_color and similarity_percent(seed.color_fingerprint, other.color_fingerprint) < color_floor:
                    continue

                combined = combined_similarity(
                    seed.structural_fingerprint, other.structural_fingerprint,
                    seed.color_fingerprint, other.color_fingerprint,
                )
                if combined < threshold:
                    continue

                members.append(other)
                member_indices.append(j)
                total += combined
                comparisons += 1

            if len(members) > 1:
                visited.update(member_indices)
                visited.add(i)
                groups.append(DuplicateGroup(type=group_type, files=tuple(members), similarity=total / comparisons))

        return groups
