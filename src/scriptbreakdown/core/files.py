from __future__ import annotations

from pathlib import Path

_FALLBACK_ENCODINGS = ("utf-8-sig", "cp1252")


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_script_text(path: Path) -> str:
    """Read a plain-text script, tolerating UTF-16 and Windows-1252 exports."""
    data = path.read_bytes()
    if data.startswith((b"\xff\xfe", b"\xfe\xff")):
        return data.decode("utf-16")
    for encoding in _FALLBACK_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")
