"""Library naming utilities.

Central place for turning library names and git URLs into directory names,
so the prerequisite checker and the git variant agree on canonical paths.
"""

import re
from pathlib import Path
from urllib.parse import urlparse

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def sanitize_library_name(name: str) -> str:
    """Convert library name to its install directory name.

    Any character outside [A-Za-z0-9_.-] becomes "_".

    Args:
        name: Library name (e.g., "Adafruit GFX Library")

    Returns:
        Directory name (e.g., "Adafruit_GFX_Library")

    Raises:
        ValueError: If the name cannot be a directory name

    Examples:
        >>> sanitize_library_name("Servo")
        'Servo'
        >>> sanitize_library_name("Adafruit GFX Library")
        'Adafruit_GFX_Library'
    """
    sanitized = _UNSAFE_CHARS.sub("_", name.strip())
    if sanitized in ("", ".", ".."):
        raise ValueError(f"invalid library name: {name!r}")
    return sanitized


def parse_git_url(git_url: str) -> tuple[str, str, str | None]:
    """Split git URL into (clone_url, library_name, ref).

    Supports:
    - scp-like URLs: git@github.com:org/Repo.git
    - Regular URLs: https://github.com/org/Repo.git
    - Local repository paths: /path/to/Repo
    - Optional "#ref" suffix on any of the above

    Raises:
        ValueError: If no library name can be derived from the URL

    Examples:
        >>> parse_git_url("https://github.com/arduino-libraries/Servo.git#1.1.8")
        ('https://github.com/arduino-libraries/Servo.git', 'Servo', '1.1.8')
        >>> parse_git_url("git@github.com:org/WiFi101.git")
        ('git@github.com:org/WiFi101.git', 'WiFi101', None)
    """
    clone_url, _, ref = git_url.strip().partition("#")
    ref = ref or None

    if clone_url.startswith("git@"):
        # scp-like syntax is not a URL
        tail = clone_url.rsplit(":", 1)[-1].rstrip("/")
        name = tail.rsplit("/", 1)[-1]
    elif Path(clone_url).exists():
        name = Path(clone_url).resolve().name
    else:
        parsed = urlparse(clone_url)
        if not parsed.scheme or not parsed.path:
            raise ValueError(f"invalid git url: {git_url!r}")
        name = parsed.path.rstrip("/").rsplit("/", 1)[-1]

    name = name.removesuffix(".git")
    if not name:
        raise ValueError(f"invalid git url: {git_url!r}")

    return clone_url, name, ref
