import asyncio
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from upload_gateway.services import keys
from upload_gateway.services.keys import generate_storage_key, sanitize_filename


def test_key_format_with_suffix():
    key = generate_storage_key("photo.png", now=1_700_000_000.25)

    assert re.fullmatch(r"1700000000250-\d{1,9}-photo\.png", key)


def test_key_without_filename_has_no_suffix():
    assert re.fullmatch(r"\d+-\d+", generate_storage_key())
    assert re.fullmatch(r"\d+-\d+", generate_storage_key("   "))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("my  holiday\tphoto.png", "my_holiday_photo.png"),
        ("../../etc/passwd", "passwd"),
        ("..\\..\\windows\\system32\\cmd.exe", "cmd.exe"),
        ("..", ""),
        ("....png", "png"),
        (".hidden", "hidden"),
        ("a..b.png", "ab.png"),
        ("a.&.b.png", "ab.png"),
        ("nul\x00byte.png", "nulbyte.png"),
        ("résumé.pdf", "résumé.pdf"),
        (None, ""),
    ],
)
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["../../etc/passwd", "/absolute/path.png", "..\\..\\boot.ini", "a/../../b", "....//....//x"],
)
def test_keys_never_contain_traversal(raw):
    key = generate_storage_key(raw)

    assert "/" not in key
    assert "\\" not in key
    assert ".." not in key


def test_sanitized_suffix_is_clipped():
    assert len(sanitize_filename("a" * 500 + ".png")) == keys.MAX_SUFFIX_LENGTH


def test_keys_unique_within_same_millisecond(monkeypatch):
    monkeypatch.setattr(keys.time, "time", lambda: 1_700_000_000.0)

    with ThreadPoolExecutor(max_workers=16) as pool:
        generated = list(pool.map(lambda _: generate_storage_key("same.png"), range(200)))

    assert len(set(generated)) == len(generated)
    assert all(key.startswith("1700000000000-") for key in generated)


@pytest.mark.asyncio
async def test_keys_unique_under_concurrent_tasks():
    now = 1_700_000_000.5
    generated = await asyncio.gather(
        *(asyncio.to_thread(generate_storage_key, "avatar.png", now=now) for _ in range(100))
    )

    assert len(set(generated)) == 100
