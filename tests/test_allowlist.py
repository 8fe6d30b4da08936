from pathlib import Path

from backup_relay.allowlist import AllowListStore


def test_allowlist_trims_and_skips_blank_lines(tmp_path: Path):
    path = tmp_path / "allowed.txt"
    path.write_text("  555 \n\n# ops channel\n-100123\n555\n", encoding="utf-8")
    store = AllowListStore(path)

    assert store.load() == frozenset({555, -100123})
    assert store.is_allowed(555)
    assert store.is_allowed(-100123)
    assert not store.is_allowed(777)


def test_non_numeric_entries_never_authorize_zero(tmp_path: Path):
    path = tmp_path / "allowed.txt"
    path.write_text("not-a-number\n555\n", encoding="utf-8")
    store = AllowListStore(path)

    assert store.load() == frozenset({555})
    assert not store.is_allowed(0)


def test_missing_file_fails_closed(tmp_path: Path):
    store = AllowListStore(tmp_path / "does-not-exist.txt")
    assert store.is_allowed(555) is False


def test_edits_apply_without_restart(tmp_path: Path):
    path = tmp_path / "allowed.txt"
    path.write_text("555\n", encoding="utf-8")
    store = AllowListStore(path)
    assert store.is_allowed(555)

    path.write_text("777\n", encoding="utf-8")
    assert not store.is_allowed(555)
    assert store.is_allowed(777)
