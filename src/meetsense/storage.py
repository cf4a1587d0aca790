"""Storage and naming utilities."""

from __future__ import annotations

import os
import re
from datetime import datetime

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def timestamp_slug(dt: datetime | None = None) -> str:
    now = dt or datetime.now()
    return now.strftime("%Y-%m-%d")


def sanitize_title(title: str) -> str:
    value = _UNSAFE.sub("-", (title or "").strip()).strip("-")
    return value or "Meeting"


def build_session_basename(title: str, dt: datetime | None = None) -> str:
    return f"{timestamp_slug(dt)}--{sanitize_title(title)}"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def ensure_structure(base_dir: str) -> dict:
    root = base_dir or os.getcwd()
    paths = {
        "root": root,
        "sessions": os.path.join(root, "Sessions"),
        "notes": os.path.join(root, "Notes"),
        "profiles": os.path.join(root, "Profiles"),
        "logs": os.path.join(root, "Logs"),
    }
    for path in paths.values():
        ensure_dir(path)
    return paths


def unique_path(directory: str, basename: str, extension: str) -> str:
    """Return ``directory/basename.ext``, suffixed with -2, -3... if taken."""
    candidate = os.path.join(directory, f"{basename}{extension}")
    counter = 2
    while os.path.exists(candidate):
        candidate = os.path.join(directory, f"{basename}-{counter}{extension}")
        counter += 1
    return candidate
