from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock
from unittest.mock import patch

import pytest
import requests

from grzybwall.app.errors import WallpaperError
from grzybwall.app.listing.crawler import DEFAULT_INDEX_URL
from grzybwall.app.listing.crawler import MAX_PAGE_BYTES
from grzybwall.app.listing.crawler import WallpaperConfig
from grzybwall.app.listing.crawler import download_image
from grzybwall.app.listing.crawler import fetch_listing
from grzybwall.app.listing.crawler import fetch_page
from grzybwall.app.listing.crawler import image_filename
from grzybwall.app.listing.crawler import image_path
from grzybwall.app.listing.crawler import load_wallpaper_config
from grzybwall.app.listing.crawler import make_session
from grzybwall.app.listing.crawler import normalize_root_url

FIXTURES = Path(__file__).parent / "fixtures"


def _stream_session(*chunks: bytes) -> MagicMock:
    resp = MagicMock()
    resp.__enter__.return_value = resp
    resp.iter_content.return_value = list(chunks)
    session = MagicMock()
    session.get.return_value = resp
    return session


def test_normalize_root_url() -> None:
    assert normalize_root_url("https://example.org/foto") == "https://example.org/foto/"
    assert normalize_root_url("https://example.org/foto//") == "https://example.org/foto/"


def test_load_wallpaper_config_defaults(tmp_path: Path) -> None:
    cfg = load_wallpaper_config({}, tmp_path)

    assert cfg.index_url == DEFAULT_INDEX_URL
    assert cfg.cookie_file is None
    assert cfg.image_exts == ["jpg", "jpeg", "png"]
    assert cfg.blocked_names == ["is.", "icon."]
    assert cfg.folder_blocked_chars == ["_", "-"]
    assert cfg.max_image_size is None
    assert cfg.screens is None
    assert cfg.download_dir is None
    assert cfg.max_page_bytes == MAX_PAGE_BYTES
    assert cfg.max_cooldown == 3600


def test_load_wallpaper_config_overrides(tmp_path: Path) -> None:
    raw = {
        "index_url": " https://example.org/pics ",
        "cookie": "cookies.txt",
        "image_extensions": [".JPG", "webp"],
        "blocked_names": ["thumb.", " "],
        "folder_blocked_chars": ["~"],
        "max_image_size": "1048576",
        "screens": 2,
        "download_dir": "walls",
        "max_page_bytes": 1000,
        "timeout": 5,
        "max_cooldown": 60,
    }

    cfg = load_wallpaper_config(raw, tmp_path)

    assert cfg.index_url == "https://example.org/pics/"
    assert cfg.cookie_file == tmp_path / "cookies.txt"
    assert cfg.image_exts == ["jpg", "webp"]
    assert cfg.blocked_names == ["thumb."]
    assert cfg.folder_blocked_chars == ["~"]
    assert cfg.max_image_size == 1048576
    assert cfg.screens == 2
    assert cfg.download_dir == tmp_path / "walls"
    assert cfg.max_page_bytes == 1000
    assert cfg.timeout == 5.0
    assert cfg.max_cooldown == 60.0


def test_make_session_without_cookie_file() -> None:
    session = make_session(WallpaperConfig())

    assert isinstance(session, requests.Session)


def test_make_session_warns_on_bad_cookie_file(tmp_path: Path, capsys) -> None:
    cookie = tmp_path / "cookies.txt"
    cookie.write_text("not a cookie jar\n", encoding="utf-8")

    make_session(WallpaperConfig(cookie_file=cookie))

    assert "[FETCH] Warning: failed to load cookie file" in capsys.readouterr().out


def test_fetch_page_truncates_to_max_bytes() -> None:
    session = _stream_session(b"a" * 10, b"b" * 10, b"c" * 10)

    text = fetch_page(session, "https://example.org/", max_bytes=15, timeout=3)

    assert text == "a" * 10 + "b" * 5
    session.get.assert_called_once_with("https://example.org/", timeout=3, stream=True)


def test_fetch_page_decodes_leniently() -> None:
    session = _stream_session(b"grzyb \xff")

    assert fetch_page(session, "https://example.org/") == "grzyb �"


def test_fetch_page_returns_none_on_error(capsys) -> None:
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("boom")

    assert fetch_page(session, "https://example.org/") is None
    assert "[FETCH] Error fetching https://example.org/: boom" in capsys.readouterr().out


def test_fetch_listing_requests_newest_first() -> None:
    session = _stream_session((FIXTURES / "index.html").read_bytes())

    entries = fetch_listing(session, "https://www.grzyby.pl/foto/", WallpaperConfig())

    assert len(list(entries)) == 5
    assert session.get.call_args[0][0] == "https://www.grzyby.pl/foto/?C=M;O=D"


def test_fetch_listing_raises_when_page_is_not_a_listing() -> None:
    session = _stream_session(b"<html><body>Forbidden</body></html>")

    with pytest.raises(WallpaperError, match="Can't parse directory listing"):
        fetch_listing(session, "https://example.org/", WallpaperConfig())


def test_fetch_listing_raises_when_fetch_fails() -> None:
    session = MagicMock()
    session.get.side_effect = requests.Timeout("slow")

    with pytest.raises(WallpaperError, match="Can't fetch directory listing"):
        fetch_listing(session, "https://example.org/", WallpaperConfig())


def test_image_filename() -> None:
    assert image_filename("https://example.org/foto/207/IMG%200101.jpg") == "IMG 0101.jpg"

    with pytest.raises(WallpaperError):
        image_filename("https://example.org/")


def test_image_path_keys_on_folder(tmp_path: Path) -> None:
    assert image_path("https://example.org/foto/207/a.jpg", tmp_path) == tmp_path / "207" / "a.jpg"
    assert image_path("https://example.org/a.jpg", tmp_path) == tmp_path / "_" / "a.jpg"
    assert image_path("https://example.org/x/a%2Fb/c.jpg", tmp_path) == tmp_path / "a_b" / "c.jpg"


def test_download_image_writes_file(tmp_path: Path) -> None:
    session = MagicMock()
    session.get.return_value.content = b"jpegdata"

    path = download_image(session, "https://example.org/207/a.jpg", tmp_path, timeout=2)

    assert path == tmp_path / "207" / "a.jpg"
    assert path.read_bytes() == b"jpegdata"
    assert not (tmp_path / "207" / "a.jpg.part").exists()
    session.get.assert_called_once_with("https://example.org/207/a.jpg", timeout=2)


def test_download_image_reuses_file_from_same_folder(tmp_path: Path) -> None:
    (tmp_path / "207").mkdir()
    (tmp_path / "207" / "a.jpg").write_bytes(b"old")
    session = MagicMock()

    path = download_image(session, "https://example.org/207/a.jpg", tmp_path)

    assert path.read_bytes() == b"old"
    session.get.assert_not_called()


def test_download_image_ignores_same_name_from_other_folder(tmp_path: Path) -> None:
    (tmp_path / "206").mkdir()
    (tmp_path / "206" / "IMG_0101.jpg").write_bytes(b"folder 206")
    session = MagicMock()
    session.get.return_value.content = b"folder 207"

    path = download_image(session, "https://example.org/foto/207/IMG_0101.jpg", tmp_path)

    assert path.read_bytes() == b"folder 207"
    assert (tmp_path / "206" / "IMG_0101.jpg").read_bytes() == b"folder 206"


def test_download_image_removes_partial_file_on_write_error(tmp_path: Path) -> None:
    session = MagicMock()
    session.get.return_value.content = b"jpegdata"

    with patch.object(Path, "replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            download_image(session, "https://example.org/207/a.jpg", tmp_path)

    assert not (tmp_path / "207" / "a.jpg.part").exists()
    assert not (tmp_path / "207" / "a.jpg").exists()


def test_download_image_propagates_http_errors(tmp_path: Path) -> None:
    session = MagicMock()
    session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404")

    with pytest.raises(requests.HTTPError):
        download_image(session, "https://example.org/207/a.jpg", tmp_path)
