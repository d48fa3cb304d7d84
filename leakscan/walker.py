"""
Filesystem traversal and filtering for LeakScan.

Walks one or more roots depth-first, applies the symlink policy, the
whitelist/blacklist path regexes, the size limit and file classification,
and yields FileDescriptor objects lazily. Per-entry errors go to a side
channel instead of stopping the walk.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator

from leakscan.errors import ConfigError
from leakscan.filetype import FileType, classify, is_scannable_type

if TYPE_CHECKING:
    from leakscan.cancel import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024  # 100 MB


@dataclass(frozen=True)
class WalkerConfig:
    """Configuration for the path walker."""

    paths: tuple[str, ...] = (".",)
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    follow_symlinks: bool = False
    blacklist: tuple[str, ...] = ()
    whitelist: tuple[str, ...] = ()


@dataclass(frozen=True)
class FileDescriptor:
    """A qualifying file, created by the walker and consumed once."""

    path: str
    size: int
    file_type: FileType
    is_archive: bool = False
    oversize: bool = False


@dataclass(frozen=True)
class WalkError:
    path: str
    message: str
    terminal: bool = False

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class WalkStats:
    total_files: int = 0
    total_bytes: int = 0
    skipped_files: int = 0
    large_files: int = 0


def compile_path_patterns(patterns: Iterable[str], label: str) -> list[re.Pattern[str]]:
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ConfigError(f"Invalid {label} pattern {pattern!r}: {exc}") from exc
    return compiled


class PathFilter:
    """Whitelist/blacklist evaluation. A configured whitelist wins outright."""

    def __init__(self, whitelist: Iterable[str] = (), blacklist: Iterable[str] = ()) -> None:
        self._whitelist = compile_path_patterns(whitelist, "whitelist")
        self._blacklist = compile_path_patterns(blacklist, "blacklist")

    def allows(self, path: str) -> bool:
        if self._whitelist:
            return any(p.search(path) for p in self._whitelist)
        return not any(p.search(path) for p in self._blacklist)


class Walk:
    """
    One traversal over a set of roots.

    Iterating yields descriptors lazily; ``errors`` fills up as the walk
    proceeds and is complete once iteration ends. A Walk can be iterated
    only once; call PathWalker.walk() again for a fresh traversal.
    """

    def __init__(self, walker: PathWalker, roots: list[str], cancel: CancelToken | None) -> None:
        self._walker = walker
        self.roots = roots
        self._cancel = cancel
        self.errors: list[WalkError] = []
        self._started = False

    def __iter__(self) -> Iterator[FileDescriptor]:
        if self._started:
            raise RuntimeError("a Walk can only be iterated once")
        self._started = True
        return self._generate()

    def _is_cancelled(self) -> bool:
        if self._cancel is not None and self._cancel.cancelled:
            self.errors.append(WalkError(path="", message=self._cancel.reason, terminal=True))
            logger.debug("Walk stopped: %s", self._cancel.reason)
            return True
        return False

    def _generate(self) -> Iterator[FileDescriptor]:
        follow = self._walker.config.follow_symlinks
        for root in self.roots:
            if self._is_cancelled():
                return
            if not os.path.lexists(root):
                self.errors.append(WalkError(path=root, message="path does not exist"))
                continue
            if os.path.islink(root) and not follow:
                self._walker.count_skipped()
                continue
            if not os.path.isdir(root):
                descriptor = self._walker.inspect(root, self.errors)
                if descriptor is not None:
                    yield descriptor
                continue

            def on_error(exc: OSError) -> None:
                self.errors.append(WalkError(path=exc.filename or root, message=exc.strerror or str(exc)))

            # (st_dev, st_ino) of every directory entered; a symlink back to
            # an ancestor is never descended twice.
            visited: set[tuple[int, int]] = set()
            for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=follow):
                try:
                    st = os.stat(dirpath)
                except OSError as exc:
                    self.errors.append(WalkError(path=dirpath, message=exc.strerror or str(exc)))
                    dirnames[:] = []
                    continue
                key = (st.st_dev, st.st_ino)
                if key in visited:
                    dirnames[:] = []
                    continue
                visited.add(key)

                kept = []
                for name in sorted(dirnames):
                    if not follow and os.path.islink(os.path.join(dirpath, name)):
                        self._walker.count_skipped()
                        continue
                    kept.append(name)
                dirnames[:] = kept

                for filename in sorted(filenames):
                    if self._is_cancelled():
                        return
                    descriptor = self._walker.inspect(os.path.join(dirpath, filename), self.errors)
                    if descriptor is not None:
                        yield descriptor


class PathWalker:
    """Turns root paths into a lazy stream of scannable file descriptors."""

    def __init__(self, config: WalkerConfig | None = None) -> None:
        self.config = config or WalkerConfig()
        self._filter = PathFilter(self.config.whitelist, self.config.blacklist)
        self._lock = threading.Lock()
        self._total_files = 0
        self._total_bytes = 0
        self._skipped = 0
        self._large = 0

    def walk(self, roots: Iterable[str] | None = None, cancel: CancelToken | None = None) -> Walk:
        return Walk(self, list(roots if roots is not None else self.config.paths), cancel)

    def stats(self) -> WalkStats:
        with self._lock:
            return WalkStats(
                total_files=self._total_files,
                total_bytes=self._total_bytes,
                skipped_files=self._skipped,
                large_files=self._large,
            )

    def count_skipped(self) -> None:
        with self._lock:
            self._skipped += 1

    def inspect(self, path: str, errors: list[WalkError]) -> FileDescriptor | None:
        """Apply the filters to one file. Returns None when it is skipped."""
        try:
            st = os.lstat(path)
            if stat.S_ISLNK(st.st_mode):
                if not self.config.follow_symlinks:
                    self.count_skipped()
                    return None
                st = os.stat(path)
        except OSError as exc:
            errors.append(WalkError(path=path, message=exc.strerror or str(exc)))
            return None

        if not stat.S_ISREG(st.st_mode):
            self.count_skipped()
            return None

        if not self._filter.allows(path):
            self.count_skipped()
            return None

        size = st.st_size
        if size > self.config.max_file_size:
            with self._lock:
                self._large += 1
            return FileDescriptor(path=path, size=size, file_type=FileType.UNKNOWN, oversize=True)

        file_type = classify(path)
        if not is_scannable_type(file_type):
            self.count_skipped()
            return None

        with self._lock:
            self._total_files += 1
            self._total_bytes += size
        return FileDescriptor(
            path=path,
            size=size,
            file_type=file_type,
            is_archive=file_type is FileType.ARCHIVE,
        )


def build_walker_config(scan_cfg: dict) -> WalkerConfig:
    """Construct a WalkerConfig from the parsed config's scan block."""
    paths = scan_cfg.get("paths", ["."])
    if isinstance(paths, str):
        paths = [paths]
    return WalkerConfig(
        paths=tuple(str(p) for p in paths),
        max_file_size=int(scan_cfg.get("max_file_size", DEFAULT_MAX_FILE_SIZE)),
        follow_symlinks=bool(scan_cfg.get("follow_symlinks", False)),
        blacklist=tuple(scan_cfg.get("blacklist", [])),
        whitelist=tuple(scan_cfg.get("whitelist", [])),
    )
