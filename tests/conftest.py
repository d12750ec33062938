import pytest
from datetime import datetime
from pathlib import Path

from dupsweep.database.db import DBManager
from dupsweep.database.ops import HashCache
from dupsweep.models import FileEntry, MediaType, ScanConfig


@pytest.fixture
def make_entry():
    """Factory for FileEntry values that never touch the disk."""
    counter = {"n": 0}

    def _make(name=None, media_type=MediaType.IMAGE, size=1000, **kwargs):
        counter["n"] += 1
        if name is None:
            name = f"file{counter['n']}.jpg"
        kwargs.setdefault("created", datetime(2023, 1, 1))
        kwargs.setdefault("modified", datetime(2023, 1, 1))
        return FileEntry(path=Path("/data") / name, size=size, media_type=media_type, **kwargs)

    return _make


@pytest.fixture
def db_manager():
    """In-memory SQLite cache with the schema initialized."""
    manager = DBManager(":memory:")
    manager.connect()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture
def cache(db_manager):
    return HashCache(db_manager)


@pytest.fixture
def write_file():
    def _write(path: Path, data: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def hash_only_config(tmp_path):
    """Exact matching only, so tests never need media decoders."""
    return ScanConfig(
        directories=(str(tmp_path),),
        use_image_similarity=False,
        use_video_similarity=False,
    )
