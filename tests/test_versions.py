"""Tests for the snapshot version store."""

from pathlib import Path

import fsspec
import pytest
from helpers import BASE_TIME_MS, FakeClock

from openwriter.config import KEEP_ALL_WITHIN_MS, MAX_VERSIONS
from openwriter.versions import VersionStore, content_hash

DAY_MS = 24 * 60 * 60 * 1000


@pytest.fixture
def live_file(tmp_path: Path) -> Path:
    path = tmp_path / "doc.md"
    path.write_text('---\n{"docId":"abcd1234","title":"Draft"}\n---\n\nhello world\n\n')
    return path


def _seed_snapshots(root: Path, doc_id: str, stamps: list[int]) -> None:
    doc_dir = root / doc_id
    doc_dir.mkdir(parents=True, exist_ok=True)
    for stamp in stamps:
        (doc_dir / f"{stamp}.md").write_text(f"snapshot {stamp}")


def test_first_snapshot_is_written(version_store: VersionStore, live_file: Path) -> None:
    timestamp = version_store.snapshot_if_needed("abcd1234", live_file)

    assert timestamp == BASE_TIME_MS  # noqa: S101
    assert version_store.get_version_content("abcd1234", timestamp) == live_file.read_text()  # noqa: S101


def test_unchanged_content_is_deduplicated(
    version_store: VersionStore,
    live_file: Path,
    clock: FakeClock,
) -> None:
    version_store.snapshot_if_needed("abcd1234", live_file)
    clock.advance(60)

    assert version_store.snapshot_if_needed("abcd1234", live_file) is None  # noqa: S101
    assert len(version_store.list_versions("abcd1234")) == 1  # noqa: S101


def test_snapshots_are_throttled(
    version_store: VersionStore,
    live_file: Path,
    clock: FakeClock,
) -> None:
    """A changed document is not snapshotted again within 30 seconds."""
    version_store.snapshot_if_needed("abcd1234", live_file)

    live_file.write_text("changed once")
    clock.advance(10)
    assert version_store.snapshot_if_needed("abcd1234", live_file) is None  # noqa: S101

    clock.advance(25)
    assert version_store.snapshot_if_needed("abcd1234", live_file) == BASE_TIME_MS + 35_000  # noqa: S101
    assert len(version_store.list_versions("abcd1234")) == 2  # noqa: S101, PLR2004


def test_cache_is_seeded_from_disk(tmp_path: Path, live_file: Path, clock: FakeClock) -> None:
    """A fresh store does not duplicate the newest snapshot after a restart."""
    root = tmp_path / ".versions"
    VersionStore(root, clock=clock).snapshot_if_needed("abcd1234", live_file)

    clock.advance(120)
    restarted = VersionStore(root, clock=clock)

    assert restarted.snapshot_if_needed("abcd1234", live_file) is None  # noqa: S101
    assert len(restarted.list_versions("abcd1234")) == 1  # noqa: S101


def test_force_snapshot_ignores_dedup_and_bumps_timestamp(
    version_store: VersionStore,
    live_file: Path,
) -> None:
    first = version_store.snapshot_if_needed("abcd1234", live_file)
    forced = version_store.force_snapshot("abcd1234", live_file)

    assert forced == first + 1  # noqa: S101
    stamps = [version["timestamp"] for version in version_store.list_versions("abcd1234")]
    assert stamps == [forced, first]  # noqa: S101


def test_retention_keeps_newest_and_recent(tmp_path: Path, clock: FakeClock) -> None:
    root = tmp_path / ".versions"
    recent = [BASE_TIME_MS - i * 1000 for i in range(10)]
    old = [BASE_TIME_MS - 8 * DAY_MS - i * 1000 for i in range(50)]
    _seed_snapshots(root, "abcd1234", recent + old)

    deleted = VersionStore(root, clock=clock).prune_versions("abcd1234")

    assert sorted(deleted) == sorted(old)[:10]  # noqa: S101
    assert len(list((root / "abcd1234").iterdir())) == MAX_VERSIONS  # noqa: S101


def test_retention_keeps_everything_within_window(tmp_path: Path, clock: FakeClock) -> None:
    root = tmp_path / ".versions"
    stamps = [BASE_TIME_MS - i * (KEEP_ALL_WITHIN_MS // 100) for i in range(60)]
    _seed_snapshots(root, "abcd1234", stamps)

    assert VersionStore(root, clock=clock).prune_versions("abcd1234") == []  # noqa: S101
    assert len(list((root / "abcd1234").iterdir())) == 60  # noqa: S101, PLR2004


def test_list_versions_metadata(version_store: VersionStore, tmp_path: Path) -> None:
    root = tmp_path / ".versions"
    _seed_snapshots(root, "abcd1234", [BASE_TIME_MS, BASE_TIME_MS + 1500])
    (root / "abcd1234" / "notanumber.md").write_text("ignored")
    (root / "abcd1234" / "123.txt").write_text("ignored")

    versions = version_store.list_versions("abcd1234")

    assert [version["timestamp"] for version in versions] == [  # noqa: S101
        BASE_TIME_MS + 1500,
        BASE_TIME_MS,
    ]
    oldest = versions[1]
    assert oldest["date"] == "2024-01-01T00:00:00.000Z"  # noqa: S101
    assert oldest["size"] == len(f"snapshot {BASE_TIME_MS}")  # noqa: S101
    assert oldest["wordCount"] == 2  # noqa: S101, PLR2004


def test_missing_versions(version_store: VersionStore) -> None:
    assert version_store.list_versions("abcd1234") == []  # noqa: S101
    assert version_store.get_version_content("abcd1234", BASE_TIME_MS) is None  # noqa: S101
    assert version_store.restore_version("abcd1234", BASE_TIME_MS) is None  # noqa: S101


def test_restore_version_parses_snapshot(version_store: VersionStore, live_file: Path) -> None:
    timestamp = version_store.snapshot_if_needed("abcd1234", live_file)
    restored = version_store.restore_version("abcd1234", timestamp)

    assert restored is not None  # noqa: S101
    assert restored["title"] == "Draft"  # noqa: S101
    assert restored["metadata"]["docId"] == "abcd1234"  # noqa: S101
    first = restored["document"]["content"][0]
    assert first["content"] == [{"type": "text", "text": "hello world"}]  # noqa: S101


def test_missing_doc_id_is_a_noop(version_store: VersionStore, live_file: Path) -> None:
    assert version_store.snapshot_if_needed(None, live_file) is None  # noqa: S101
    assert version_store.force_snapshot("", live_file) is None  # noqa: S101
    assert version_store.list_versions(None) == []  # noqa: S101
    assert version_store.prune_versions(None) == []  # noqa: S101


def test_unsafe_doc_id_is_rejected(version_store: VersionStore, live_file: Path) -> None:
    with pytest.raises(ValueError, match="Invalid doc_id"):
        version_store.snapshot_if_needed("../escape", live_file)


def test_unsafe_doc_id_lookups_find_nothing(
    version_store: VersionStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    assert version_store.list_versions("../escape") == []  # noqa: S101
    assert version_store.get_version_content("../escape", BASE_TIME_MS) is None  # noqa: S101
    assert version_store.restore_version("a/b", BASE_TIME_MS) is None  # noqa: S101
    assert "Ignoring version lookup" in caplog.text  # noqa: S101


def test_missing_live_file(version_store: VersionStore, tmp_path: Path) -> None:
    assert version_store.snapshot_if_needed("abcd1234", tmp_path / "gone.md") is None  # noqa: S101
    assert version_store.force_snapshot("abcd1234", tmp_path / "gone.md") is None  # noqa: S101


def test_ensure_doc_id() -> None:
    metadata: dict = {}
    doc_id = VersionStore.ensure_doc_id(metadata)

    assert len(doc_id) == 8  # noqa: S101, PLR2004
    assert metadata["docId"] == doc_id  # noqa: S101
    assert VersionStore.ensure_doc_id(metadata) == doc_id  # noqa: S101


def test_content_hash_is_truncated_sha256() -> None:
    assert content_hash("abc") == "ba7816bf8f01cfea"  # noqa: S101


def test_store_on_memory_filesystem(clock: FakeClock, tmp_path: Path) -> None:
    """Snapshots and live files can live on any fsspec filesystem."""
    fs = fsspec.filesystem("memory")
    base = f"/{tmp_path.name}"
    fs.pipe(f"{base}/live.md", b"in memory")
    store = VersionStore(f"{base}/versions", fs=fs, clock=clock)

    timestamp = store.snapshot_if_needed("abcd1234", f"{base}/live.md")

    assert store.get_version_content("abcd1234", timestamp) == "in memory"  # noqa: S101
    assert fs.exists(f"{base}/versions/abcd1234/{timestamp}.md")  # noqa: S101
    fs.rm(base, recursive=True)
