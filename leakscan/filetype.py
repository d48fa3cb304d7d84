"""
File classification for LeakScan.

Assigns a coarse type to a path using, in order: the extension tables,
magic-number signatures from the first 512 bytes, and a printable-byte
ratio over the first 8 KiB.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class FileType(str, Enum):
    TEXT = "text"
    BINARY = "binary"
    ARCHIVE = "archive"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    EXECUTABLE = "executable"
    UNKNOWN = "unknown"


_TEXT_EXTENSIONS = frozenset({
    ".txt", ".md", ".json", ".yaml", ".yml", ".xml", ".csv", ".log", ".conf",
    ".config", ".ini", ".toml", ".properties",
    # source
    ".go", ".py", ".java", ".c", ".cpp", ".h", ".hpp", ".js", ".ts", ".jsx",
    ".tsx", ".php", ".rb", ".rs", ".swift", ".kt", ".scala", ".pl", ".sh",
    ".bash", ".zsh", ".ps1", ".bat", ".cmd",
    # web
    ".html", ".htm", ".css", ".scss", ".sass", ".less", ".vue", ".svelte",
    # data
    ".sql", ".graphql", ".proto",
    # dotfiles and scripts
    ".dockerfile", ".gitignore", ".env", ".editorconfig", ".prettierrc", ".eslintrc",
})

_ARCHIVE_EXTENSIONS = frozenset({
    ".zip", ".tar", ".gz", ".bz2", ".xz", ".7z", ".rar", ".tgz",
    ".tar.gz", ".tar.bz2", ".tar.xz", ".jar", ".war", ".ear",
})

_IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".webp", ".ico",
    ".tif", ".tiff", ".raw", ".heic", ".heif",
})

_VIDEO_EXTENSIONS = frozenset({
    ".mp4", ".avi", ".mov", ".mkv", ".flv", ".wmv", ".webm", ".m4v",
    ".mpg", ".mpeg", ".3gp", ".f4v",
})

_AUDIO_EXTENSIONS = frozenset({
    ".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma", ".m4a", ".ape", ".opus",
})

_EXECUTABLE_EXTENSIONS = frozenset({
    ".exe", ".dll", ".so", ".dylib", ".app", ".bin", ".out", ".elf", ".o", ".a",
})

_EXTENSION_TABLES: tuple[tuple[frozenset[str], FileType], ...] = (
    (_TEXT_EXTENSIONS, FileType.TEXT),
    (_ARCHIVE_EXTENSIONS, FileType.ARCHIVE),
    (_IMAGE_EXTENSIONS, FileType.IMAGE),
    (_VIDEO_EXTENSIONS, FileType.VIDEO),
    (_AUDIO_EXTENSIONS, FileType.AUDIO),
    (_EXECUTABLE_EXTENSIONS, FileType.EXECUTABLE),
)

# Longer signatures first so prefixes never shadow a more specific match.
_SIGNATURES: tuple[tuple[bytes, FileType], ...] = (
    (b"\x37\x7a\xbc\xaf\x27\x1c", FileType.ARCHIVE),     # 7z
    (b"\x7fELF", FileType.EXECUTABLE),                   # ELF
    (b"\xfe\xed\xfa\xce", FileType.EXECUTABLE),          # Mach-O 32
    (b"\xfe\xed\xfa\xcf", FileType.EXECUTABLE),          # Mach-O 64
    (b"\xca\xfe\xba\xbe", FileType.EXECUTABLE),          # Java class
    (b"PK\x03\x04", FileType.ARCHIVE),                   # ZIP
    (b"\x89PNG", FileType.IMAGE),                        # PNG
    (b"%PDF", FileType.BINARY),                          # PDF
    (b"BZh", FileType.ARCHIVE),                          # BZ2
    (b"\xff\xd8\xff", FileType.IMAGE),                   # JPEG
    (b"MZ", FileType.EXECUTABLE),                        # PE
    (b"\x1f\x8b", FileType.ARCHIVE),                     # GZIP
)

_SIGNATURE_SAMPLE = 512
_TEXT_SAMPLE = 8192
_NON_PRINTABLE_RATIO = 0.3
_WHITESPACE = frozenset({9, 10, 13})


def _by_extension(path: Path) -> FileType | None:
    name = path.name.lower()
    # Dotfiles such as ".env" have no suffix as far as pathlib is concerned.
    suffix = path.suffix.lower() or (name if name.startswith(".") else "")
    # Double suffixes such as ".tar.gz" only live in the archive table.
    double = "".join(Path(name).suffixes[-2:])
    if double in _ARCHIVE_EXTENSIONS:
        return FileType.ARCHIVE
    for table, file_type in _EXTENSION_TABLES:
        if suffix in table:
            return file_type
    return None


def _by_signature(head: bytes) -> FileType | None:
    for magic, file_type in _SIGNATURES:
        if head.startswith(magic):
            return file_type
    return None


def _looks_like_text(sample: bytes) -> bool:
    """True if fewer than 30% of bytes are outside printable ASCII and tab/LF/CR."""
    if not sample:
        return True
    non_printable = sum(1 for b in sample if not (32 <= b <= 126) and b not in _WHITESPACE)
    return non_printable < len(sample) * _NON_PRINTABLE_RATIO


def classify(path: str | Path) -> FileType:
    """
    Classify a file. First match wins: extension, signature, text sniff.

    A file that cannot be opened for sniffing is UNKNOWN.
    """
    path = Path(path)
    by_ext = _by_extension(path)
    if by_ext is not None:
        return by_ext

    try:
        with open(path, "rb") as f:
            sample = f.read(_TEXT_SAMPLE)
    except OSError:
        return FileType.UNKNOWN

    by_sig = _by_signature(sample[:_SIGNATURE_SAMPLE])
    if by_sig is not None:
        return by_sig

    return FileType.TEXT if _looks_like_text(sample) else FileType.BINARY


def should_scan(path: str | Path) -> bool:
    """Only text and archive files are submitted for detection."""
    return is_scannable_type(classify(path))


def is_scannable_type(file_type: FileType) -> bool:
    return file_type in (FileType.TEXT, FileType.ARCHIVE)


def is_archive(path: str | Path) -> bool:
    return classify(path) is FileType.ARCHIVE


def is_text(path: str | Path) -> bool:
    return classify(path) is FileType.TEXT
