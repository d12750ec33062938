import pytest
from datetime import datetime

from dupsweep.detection.grouper import DuplicateGrouper, images_compatible
from dupsweep.models import DuplicateGroup, DuplicateType, MediaType, ScanConfig

ALL_BITS = (1 << 64) - 1


@pytest.fixture
def grouper():
    return DuplicateGrouper()


# --- Exact matches ---

def test_exact_match_single_group(grouper, make_entry):
    files = [
        make_entry("f1", full_hash="abc123"),
        make_entry("f2", full_hash="abc123"),
        make_entry("f3", full_hash="def456"),
    ]
    groups = grouper.find_exact_matches(files, ScanConfig())

    assert len(groups) == 1
    g = groups[0]
    assert g.type == DuplicateType.EXACT_MATCH
    assert g.similarity == 100.0
    assert [f.name for f in g.files] == ["f1", "f2"]


@pytest.mark.parametrize("blank", [None, "", "   "])
def test_exact_match_skips_blank_hashes(grouper, make_entry, blank):
    files = [make_entry("a", full_hash=blank), make_entry("b", full_hash=blank), make_entry("c", full_hash="x")]
    assert grouper.find_exact_matches(files, ScanConfig()) == []


def test_exact_match_hash_case_insensitive(grouper, make_entry):
    files = [make_entry("a", full_hash="ABCDEF"), make_entry("b", full_hash="abcdef")]
    groups = grouper.find_exact_matches(files, ScanConfig())
    assert len(groups) == 1


def test_created_date_split(grouper, make_entry):
    d1, d2 = datetime(2020, 5, 1), datetime(2021, 5, 1)
    files = [
        make_entry("a", full_hash="abc", created=d1),
        make_entry("b", full_hash="abc", created=d1),
        make_entry("c", full_hash="abc", created=d2),
    ]
    groups = grouper.find_exact_matches(files, ScanConfig(match_created_date=True))

    assert len(groups) == 1
    assert {f.name for f in groups[0].files} == {"a", "b"}


def test_created_and_modified_filters_chain(grouper, make_entry):
    c = datetime(2020, 1, 1)
    m1, m2 = datetime(2022, 1, 1), datetime(2022, 6, 1)
    files = [
        make_entry("a", full_hash="abc", created=c, modified=m1),
        make_entry("b", full_hash="abc", created=c, modified=m2),
        make_entry("c", full_hash="abc", created=c, modified=m2),
        make_entry("d", full_hash="abc", created=datetime(2019, 1, 1), modified=m2),
    ]
    cfg = ScanConfig(match_created_date=True, match_modified_date=True)
    groups = grouper.find_exact_matches(files, cfg)

    assert len(groups) == 1
    assert {f.name for f in groups[0].files} == {"b", "c"}


def test_date_split_never_merges_hash_partitions(grouper, make_entry):
    d = datetime(2020, 1, 1)
    files = [
        make_entry("a", full_hash="h1", created=d),
        make_entry("b", full_hash="h2", created=d),
    ]
    assert grouper.find_exact_matches(files, ScanConfig(match_created_date=True)) == []


# --- Size and resolution matches ---

def test_size_matches_group_equal_sizes(grouper, make_entry):
    files = [make_entry("a", size=10), make_entry("b", size=10), make_entry("c", size=11)]
    groups = grouper.find_size_matches(files, ScanConfig(use_hash_comparison=False, use_size_comparison=True))

    assert len(groups) == 1
    assert groups[0].type == DuplicateType.EXACT_MATCH
    assert groups[0].similarity == 100.0
    assert [f.name for f in groups[0].files] == ["a", "b"]


def test_size_matches_keyed_by_resolution(grouper, make_entry):
    files = [
        make_entry("a", size=10, width=100, height=50),
        make_entry("b", size=10, width=100, height=50),
        make_entry("c", size=10, width=50, height=100),
    ]
    cfg = ScanConfig(use_size_comparison=True, use_resolution_comparison=True)
    groups = grouper.find_size_matches(files, cfg)

    assert [{f.name for f in g.files} for g in groups] == [{"a", "b"}]


def test_size_matches_apply_date_filters(grouper, make_entry):
    files = [
        make_entry("a", size=10, modified=datetime(2020, 1, 1)),
        make_entry("b", size=10, modified=datetime(2021, 1, 1)),
    ]
    cfg = ScanConfig(use_size_comparison=True, match_modified_date=True)
    assert grouper.find_size_matches(files, cfg) == []


def test_size_candidates_drop_unique_keys(grouper, make_entry):
    a = make_entry("a", size=10, width=10, height=10)
    b = make_entry("b", size=10, width=10, height=10)
    c = make_entry("c", size=10, width=20, height=10)
    d = make_entry("d", size=99)

    assert grouper.find_size_candidates([a, b, c, d], ScanConfig()) == [a, b, c]
    assert grouper.find_size_candidates([a, b, c, d], ScanConfig(use_resolution_comparison=True)) == [a, b]


# --- Similar images ---

def test_one_bit_difference_groups(grouper, make_entry):
    files = [make_entry(structural_fingerprint=0), make_entry(structural_fingerprint=1)]
    groups = grouper.find_similar_images(files, 85)

    assert len(groups) == 1
    assert groups[0].type == DuplicateType.SIMILAR_IMAGE
    assert groups[0].similarity >= 85


def test_all_bits_different_no_group(grouper, make_entry):
    files = [make_entry(structural_fingerprint=0), make_entry(structural_fingerprint=ALL_BITS)]
    assert grouper.find_similar_images(files, 85) == []


def test_image_search_ignores_other_types(grouper, make_entry):
    files = [
        make_entry("a.jpg", structural_fingerprint=42),
        make_entry("v.mp4", media_type=MediaType.VIDEO, structural_fingerprint=42),
        make_entry("b.jpg", structural_fingerprint=42),
        make_entry("w.mp4", media_type=MediaType.VIDEO, structural_fingerprint=42),
    ]
    groups = grouper.find_similar_images(files, 85)

    assert len(groups) == 1
    assert {f.name for f in groups[0].files} == {"a.jpg", "b.jpg"}


def test_missing_fingerprint_not_a_candidate(grouper, make_entry):
    files = [make_entry(structural_fingerprint=7), make_entry(structural_fingerprint=None)]
    assert grouper.find_similar_images(files, 50) == []


def test_grouping_is_not_transitive(grouper, make_entry):
    # B and C each differ from A in 8 bits but from each other in 16
    a = make_entry("a", structural_fingerprint=0)
    b = make_entry("b", structural_fingerprint=0xFF)
    c = make_entry("c", structural_fingerprint=0xFF00)
    groups = grouper.find_similar_images([a, b, c], 85)

    assert len(groups) == 1
    assert [f.name for f in groups[0].files] == ["a", "b", "c"]
    # Seed identity 100 plus two members at 87.5
    assert groups[0].similarity == pytest.approx((100 + 87.5 + 87.5) / 3)


def test_ungrouped_seed_stays_candidate_order(grouper, make_entry):
    lonely = make_entry("lonely", structural_fingerprint=ALL_BITS)
    x = make_entry("x", structural_fingerprint=0)
    y = make_entry("y", structural_fingerprint=1)
    groups = grouper.find_similar_images([lonely, x, y], 85)

    assert len(groups) == 1
    assert [f.name for f in groups[0].files] == ["x", "y"]


def test_members_never_reused_across_groups(grouper, make_entry):
    files = [make_entry(structural_fingerprint=0) for _ in range(5)]
    groups = grouper.find_similar_images(files, 90)

    assert len(groups) == 1
    assert groups[0].file_count == 5


def test_color_floor_rejects_structural_match(grouper, make_entry):
    # structural 100, color 50 -> combined 80 clears 75 but color floor is 60
    files = [
        make_entry(structural_fingerprint=9, color_fingerprint=0),
        make_entry(structural_fingerprint=9, color_fingerprint=(1 << 32) - 1),
    ]
    assert grouper.find_similar_images(files, 75) == []


def test_structural_floor_rejects_color_match(grouper, make_entry):
    # 22 bits differ: structural 65.6, combined 79.4, floor is 70
    files = [
        make_entry(structural_fingerprint=0, color_fingerprint=3),
        make_entry(structural_fingerprint=(1 << 22) - 1, color_fingerprint=3),
    ]
    assert grouper.find_similar_images(files, 70) == []


def test_color_floor_skipped_without_color(grouper, make_entry):
    files = [
        make_entry(structural_fingerprint=9, color_fingerprint=0),
        make_entry(structural_fingerprint=9, color_fingerprint=None),
    ]
    assert len(grouper.find_similar_images(files, 90)) == 1


def test_size_gate_rejects_images(grouper, make_entry):
    files = [make_entry(size=1000, structural_fingerprint=0), make_entry(size=400, structural_fingerprint=0)]
    assert grouper.find_similar_images(files, 85) == []


def test_video_skips_compatibility_gate(grouper, make_entry):
    files = [
        make_entry("a.mp4", media_type=MediaType.VIDEO, size=10, structural_fingerprint=0),
        make_entry("b.mp4", media_type=MediaType.VIDEO, size=10_000, structural_fingerprint=1),
    ]
    groups = grouper.find_similar_videos(files, 85)

    assert len(groups) == 1
    assert groups[0].type == DuplicateType.SIMILAR_VIDEO


def test_images_compatible_gates(make_entry):
    base = make_entry(size=1000, width=400, height=300)

    assert images_compatible(base, make_entry(size=450, width=400, height=300))
    assert not images_compatible(base, make_entry(size=449, width=400, height=300))
    # Same aspect, 25% of the pixels
    assert not images_compatible(base, make_entry(size=1000, width=200, height=150))
    # Same area, rotated (aspect ratio ratio 0.5625)
    assert not images_compatible(base, make_entry(size=1000, width=300, height=400))
    # Unknown dimensions: only the byte-size gate applies
    assert images_compatible(base, make_entry(size=1000, width=10, height=None))


def test_images_compatible_zero_sizes(make_entry):
    assert images_compatible(make_entry(size=0), make_entry(size=0))


# --- Audio ---

def test_audio_identical_fingerprints(grouper, make_entry):
    files = [
        make_entry("a.mp3", media_type=MediaType.AUDIO, audio_fingerprint=123),
        make_entry("b.mp3", media_type=MediaType.AUDIO, audio_fingerprint=123),
        make_entry("c.mp3", media_type=MediaType.AUDIO, audio_fingerprint=124),
        make_entry("d.mp3", media_type=MediaType.AUDIO, audio_fingerprint=None),
    ]
    groups = grouper.find_similar_audio(files, 100)

    assert len(groups) == 1
    assert groups[0].type == DuplicateType.SIMILAR_AUDIO
    assert {f.name for f in groups[0].files} == {"a.mp3", "b.mp3"}


@pytest.mark.parametrize("threshold", [100.01, 101, 500])
def test_audio_threshold_above_100_yields_nothing(grouper, make_entry, threshold):
    files = [make_entry(media_type=MediaType.AUDIO, audio_fingerprint=1) for _ in range(3)]
    assert grouper.find_similar_audio(files, threshold) == []


# --- Group model ---

def test_group_requires_two_members(make_entry):
    with pytest.raises(ValueError):
        DuplicateGroup(type=DuplicateType.EXACT_MATCH, files=(make_entry(),))


def test_group_helpers(make_entry):
    a = make_entry(size=100, created=datetime(2020, 1, 1), modified=datetime(2020, 1, 1))
    b = make_entry(size=300, created=datetime(2021, 1, 1), modified=datetime(2022, 1, 1))
    g = DuplicateGroup(type=DuplicateType.EXACT_MATCH, files=(a, b))

    assert g.total_size == 400
    assert g.potential_savings == 300
    assert g.oldest() is a
    assert g.newest() is b
    assert g.smallest() is a
    assert g.largest() is b
    assert g.group_id != DuplicateGroup(type=DuplicateType.EXACT_MATCH, files=(a, b)).group_id
