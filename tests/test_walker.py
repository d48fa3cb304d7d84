"""Tests for filesystem traversal, path filtering and size limits."""

from __future__ import annotations

import os

import pytest

from leakscan.cancel import CancelToken
from leakscan.errors import ConfigError
from leakscan.filetype import FileType
from leakscan.walker import (
    PathFilter,
    PathWalker,
    WalkerConfig,
    build_walker_config,
)


def _make_tree(root):
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text("print('hi')\n")
    (root / "src" / "settings.json").write_text("{}\n")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "dep.js").write_text("module.exports = 1\n")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    (root / "bundle.zip").write_bytes(b"PK\x03\x04")
    return root


def _paths(descriptors, root):
    return sorted(os.path.relpath(d.path, root) for d in descriptors)


# ── traversal ──────────────────────────────────────────────────────────────


def test_walk_yields_scannable_files(tmp_path):
    root = _make_tree(tmp_path)
    walker = PathWalker(WalkerConfig(paths=(str(root),)))
    walk = walker.walk()
    found = list(walk)
    assert _paths(found, root) == [
        "bundle.zip",
        os.path.join("node_modules", "dep.js"),
        os.path.join("src", "app.py"),
        os.path.join("src", "settings.json"),
    ]
    assert walk.errors == []
    by_name = {os.path.basename(d.path): d for d in found}
    assert by_name["bundle.zip"].is_archive
    assert by_name["bundle.zip"].file_type is FileType.ARCHIVE
    assert by_name["app.py"].file_type is FileType.TEXT


def test_walk_counts_skipped_and_scanned(tmp_path):
    root = _make_tree(tmp_path)
    walker = PathWalker(WalkerConfig(paths=(str(root),)))
    list(walker.walk())
    stats = walker.stats()
    assert stats.total_files == 4
    assert stats.skipped_files == 1  # logo.png
    assert stats.total_bytes == sum(
        os.path.getsize(p) for p in (
            root / "bundle.zip",
            root / "node_modules" / "dep.js",
            root / "src" / "app.py",
            root / "src" / "settings.json",
        )
    )


def test_file_root_is_inspected_directly(tmp_path):
    target = tmp_path / "single.py"
    target.write_text("x = 1\n")
    found = list(PathWalker().walk([str(target)]))
    assert [d.path for d in found] == [str(target)]


def test_missing_root_is_reported_not_raised(tmp_path):
    walk = PathWalker().walk([str(tmp_path / "nope")])
    assert list(walk) == []
    assert len(walk.errors) == 1
    assert not walk.errors[0].terminal
    assert "does not exist" in walk.errors[0].message


def test_walk_is_lazy(tmp_path):
    root = _make_tree(tmp_path)
    walk = PathWalker().walk([str(root)])
    it = iter(walk)
    first = next(it)
    assert first.path.endswith("bundle.zip")


def test_walk_iterates_only_once(tmp_path):
    walk = PathWalker().walk([str(tmp_path)])
    list(walk)
    with pytest.raises(RuntimeError):
        iter(walk)


def test_walker_is_restartable(tmp_path):
    root = _make_tree(tmp_path)
    walker = PathWalker()
    first = list(walker.walk([str(root)]))
    second = list(walker.walk([str(root)]))
    assert [d.path for d in first] == [d.path for d in second]


# ── size limit ─────────────────────────────────────────────────────────────


def test_oversize_file_emitted_as_unknown(tmp_path):
    big = tmp_path / "dump.sql"
    big.write_text("x" * 2048)
    small = tmp_path / "ok.sql"
    small.write_text("x" * 16)
    walker = PathWalker(WalkerConfig(max_file_size=1024))
    found = {os.path.basename(d.path): d for d in walker.walk([str(tmp_path)])}
    assert found["dump.sql"].oversize
    assert found["dump.sql"].file_type is FileType.UNKNOWN
    assert found["dump.sql"].size == 2048
    assert not found["ok.sql"].oversize
    stats = walker.stats()
    assert stats.large_files == 1
    assert stats.total_files == 1


def test_file_at_size_limit_is_scanned(tmp_path):
    exact = tmp_path / "exact.txt"
    exact.write_text("x" * 1024)
    (descriptor,) = PathWalker(WalkerConfig(max_file_size=1024)).walk([str(tmp_path)])
    assert not descriptor.oversize


# ── filtering ──────────────────────────────────────────────────────────────


def test_blacklist_excludes_paths(tmp_path):
    root = _make_tree(tmp_path)
    walker = PathWalker(WalkerConfig(blacklist=("node_modules",)))
    found = _paths(walker.walk([str(root)]), root)
    assert os.path.join("node_modules", "dep.js") not in found
    assert os.path.join("src", "app.py") in found


def test_whitelist_is_exclusive_and_beats_blacklist(tmp_path):
    root = _make_tree(tmp_path)
    walker = PathWalker(WalkerConfig(whitelist=(r"\.js$",), blacklist=(r"\.js$",)))
    found = _paths(walker.walk([str(root)]), root)
    assert found == [os.path.join("node_modules", "dep.js")]


def test_path_filter_semantics():
    assert PathFilter().allows("/any/path")
    assert not PathFilter(blacklist=[r"/\.git/"]).allows("/repo/.git/config")
    assert PathFilter(whitelist=[r"\.py$"]).allows("/repo/a.py")
    assert not PathFilter(whitelist=[r"\.py$"]).allows("/repo/a.txt")


def test_invalid_filter_pattern_raises_config_error():
    with pytest.raises(ConfigError):
        PathFilter(blacklist=["(unclosed"])


# ── symlinks ───────────────────────────────────────────────────────────────


def _symlink_or_skip(target, link):
    try:
        os.symlink(target, link)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported on this platform")


def test_symlinks_skipped_by_default(tmp_path):
    real = tmp_path / "real.py"
    real.write_text("x = 1\n")
    _symlink_or_skip(real, tmp_path / "link.py")
    walker = PathWalker()
    found = [os.path.basename(d.path) for d in walker.walk([str(tmp_path)])]
    assert found == ["real.py"]
    assert walker.stats().skipped_files == 1


def test_symlinks_followed_when_enabled(tmp_path):
    real = tmp_path / "real.py"
    real.write_text("x = 1\n")
    _symlink_or_skip(real, tmp_path / "link.py")
    walker = PathWalker(WalkerConfig(follow_symlinks=True))
    found = sorted(os.path.basename(d.path) for d in walker.walk([str(tmp_path)]))
    assert found == ["link.py", "real.py"]


def test_directory_symlink_loop_visits_each_file_once(tmp_path):
    (tmp_path / "a.py").write_text("x = 1\n")
    _symlink_or_skip(tmp_path, tmp_path / "loop")
    walker = PathWalker(WalkerConfig(follow_symlinks=True))
    walk = walker.walk([str(tmp_path)])
    found = [d.path for d in walk]
    assert found == [str(tmp_path / "a.py")]
    assert walker.stats().total_files == 1
    assert walk.errors == []


def test_followed_directory_symlink_is_walked(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    (real / "a.py").write_text("x = 1\n")
    tree = tmp_path / "tree"
    tree.mkdir()
    _symlink_or_skip(real, tree / "linkdir")
    found = [d.path for d in PathWalker(WalkerConfig(follow_symlinks=True)).walk([str(tree)])]
    assert found == [str(tree / "linkdir" / "a.py")]


def test_directory_symlink_inside_tree_skipped_and_counted(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    (real / "a.py").write_text("x = 1\n")
    tree = tmp_path / "tree"
    tree.mkdir()
    (tree / "b.py").write_text("y = 2\n")
    _symlink_or_skip(real, tree / "linkdir")
    walker = PathWalker()
    found = [os.path.basename(d.path) for d in walker.walk([str(tree)])]
    assert found == ["b.py"]
    assert walker.stats().skipped_files == 1


@pytest.mark.parametrize("target_is_dir", [True, False])
def test_symlink_root_skipped_and_counted(tmp_path, target_is_dir):
    real = tmp_path / "real"
    real.mkdir()
    (real / "a.py").write_text("x = 1\n")
    target = real if target_is_dir else real / "a.py"
    link = tmp_path / "linkroot"
    _symlink_or_skip(target, link)
    walker = PathWalker()
    walk = walker.walk([str(link)])
    assert list(walk) == []
    assert walk.errors == []
    assert walker.stats().skipped_files == 1


def test_symlink_root_followed_when_enabled(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    (real / "a.py").write_text("x = 1\n")
    link = tmp_path / "linkroot"
    _symlink_or_skip(real, link)
    found = [d.path for d in PathWalker(WalkerConfig(follow_symlinks=True)).walk([str(link)])]
    assert found == [os.path.join(str(link), "a.py")]


# ── cancellation ───────────────────────────────────────────────────────────


def test_cancelled_walk_stops_with_terminal_error(tmp_path):
    root = _make_tree(tmp_path)
    token = CancelToken()
    token.cancel("user abort")
    walk = PathWalker().walk([str(root)], cancel=token)
    assert list(walk) == []
    assert walk.errors[-1].terminal
    assert walk.errors[-1].message == "user abort"


def test_cancel_mid_walk_stops_emitting(tmp_path):
    root = _make_tree(tmp_path)
    token = CancelToken()
    walk = PathWalker().walk([str(root)], cancel=token)
    emitted = []
    for descriptor in walk:
        emitted.append(descriptor)
        token.cancel()
    assert len(emitted) == 1
    assert walk.errors[-1].terminal


# ── config ─────────────────────────────────────────────────────────────────


def test_build_walker_config_defaults():
    config = build_walker_config({})
    assert config.paths == (".",)
    assert config.max_file_size == 100 * 1024 * 1024
    assert not config.follow_symlinks


def test_build_walker_config_accepts_single_path():
    config = build_walker_config({"paths": "src", "blacklist": [r"\.min\.js$"]})
    assert config.paths == ("src",)
    assert config.blacklist == (r"\.min\.js$",)
