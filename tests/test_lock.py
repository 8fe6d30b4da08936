import os
from pathlib import Path

from backup_relay.lock import RunLock


def test_lock_is_exclusive_until_released(tmp_path: Path):
    first = RunLock(tmp_path)
    second = RunLock(tmp_path)

    assert first.acquire() is True
    assert first.owner() == os.getpid()
    assert second.acquire() is False

    first.release()
    assert not first.path.exists()
    assert second.acquire() is True
    second.release()


def test_leftover_lock_file_is_reclaimed(tmp_path: Path):
    (tmp_path / ".backup.lock").write_text("999999999", encoding="utf-8")
    lock = RunLock(tmp_path)

    assert lock.acquire() is True
    assert lock.owner() == os.getpid()
    lock.release()


def test_contender_does_not_steal_a_reclaimed_lock(tmp_path: Path):
    (tmp_path / ".backup.lock").write_text("999999999", encoding="utf-8")
    first = RunLock(tmp_path)
    second = RunLock(tmp_path)

    assert first.acquire() is True
    assert second.acquire() is False
    assert first.path.exists()
    assert first.owner() == os.getpid()
    first.release()


def test_release_without_acquire_is_a_noop(tmp_path: Path):
    lock = RunLock(tmp_path)
    lock.release()
    assert lock.held is False
