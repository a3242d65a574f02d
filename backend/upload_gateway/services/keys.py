import re
import secrets
import time

MAX_SUFFIX_LENGTH = 100
RANDOM_UPPER_BOUND = 10**9

_WHITESPACE = re.compile(r"\s+")
_CONTROL_AND_SEPARATORS = re.compile(r"[/\\\x00-\x1f\x7f]")
_UNSAFE = re.compile(r"[^\w.\-]")


def sanitize_filename(filename: str | None) -> str:
    """Turn an untrusted client filename into a suffix safe for paths and URLs.

    Returns an empty string when nothing usable is left.
    """
    if not filename:
        return ""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _WHITESPACE.sub("_", name.strip())
    name = _CONTROL_AND_SEPARATORS.sub("", name)
    name = _UNSAFE.sub("", name)
    while ".." in name:
        name = name.replace("..", "")
    name = name.lstrip(".-")
    return name[:MAX_SUFFIX_LENGTH]


def generate_storage_key(original_filename: str | None = None, *, now: float | None = None) -> str:
    timestamp_ms = int((time.time() if now is None else now) * 1000)
    key = f"{timestamp_ms}-{secrets.randbelow(RANDOM_UPPER_BOUND)}"
    suffix = sanitize_filename(original_filename)
    if suffix:
        key = f"{key}-{suffix}"
    return key
