"""Output helpers for run records, exported scripts and audio files."""

from __future__ import annotations

import base64
import json
import os
from pathlib import Path
from typing import Any


def ensure_dir(path: str | Path) -> Path:
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def atomic_write(path: str | Path, content: bytes | str) -> Path:
    """Write ``content`` next to ``path`` first, then move it into place.

    Readers never observe a half-written script or mp3 file.
    """
    target = Path(path)
    ensure_dir(target.parent)
    payload = content.encode("utf-8") if isinstance(content, str) else content
    staging = target.with_name(f".{target.name}.partial")
    staging.write_bytes(payload)
    os.replace(staging, target)
    return target


def write_text(path: str | Path, content: str) -> Path:
    return atomic_write(path, content)


def write_json(path: str | Path, data: Any) -> Path:
    """Serialize ``data`` as indented UTF-8 JSON (non-ASCII kept readable)."""
    return atomic_write(path, json.dumps(data, indent=2, ensure_ascii=False))


def data_url(data: bytes, mime: str) -> str:
    """Return a base64 ``data:`` URL suitable for vision model image inputs."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{encoded}"
