from __future__ import annotations

from dataclasses import dataclass, field
from http.cookiejar import MozillaCookieJar
from pathlib import Path
from typing import Iterator, List, Optional
from urllib.parse import unquote, urljoin, urlparse
import tempfile

import requests

from ..errors import WallpaperError
from .parser import ListingEntry, parse_listing

DEFAULT_INDEX_URL = "https://www.grzyby.pl/foto/"
SORT_NEWEST_FIRST = "?C=M;O=D"
MAX_PAGE_BYTES = 40962


@dataclass
class WallpaperConfig:
    index_url: str = DEFAULT_INDEX_URL
    cookie_file: Optional[Path] = None
    image_exts: List[str] = field(default_factory=lambda: ["jpg", "jpeg", "png"])
    blocked_names: List[str] = field(default_factory=lambda: ["is.", "icon."])
    folder_blocked_chars: List[str] = field(default_factory=lambda: ["_", "-"])
    max_image_size: Optional[int] = None
    screens: Optional[int] = None
    download_dir: Optional[Path] = None
    max_page_bytes: int = MAX_PAGE_BYTES
    timeout: float = 15
    max_cooldown: float = 3600


def normalize_root_url(url: str) -> str:
    """
    Ensure root URL ends with a slash.
    """
    return url.rstrip("/") + "/"


def _resolve_path(value: str, base: Path) -> Path:
    p = Path(value).expanduser()
    if not p.is_absolute():
        p = base / p
    return p


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def load_wallpaper_config(raw_cfg: dict, app_root: Path) -> WallpaperConfig:
    cfg = WallpaperConfig()

    url = (raw_cfg.get("index_url") or "").strip()
    if url:
        cfg.index_url = normalize_root_url(url)

    cookie_val = (raw_cfg.get("cookie") or "").strip()
    if cookie_val:
        cfg.cookie_file = _resolve_path(cookie_val, app_root)

    if "image_extensions" in raw_cfg:
        cfg.image_exts = [e.lower().lstrip(".") for e in raw_cfg["image_extensions"]]
    if "blocked_names" in raw_cfg:
        cfg.blocked_names = [b.strip().lower() for b in raw_cfg["blocked_names"] if b.strip()]
    if "folder_blocked_chars" in raw_cfg:
        cfg.folder_blocked_chars = [c for c in raw_cfg["folder_blocked_chars"] if c]

    cfg.max_image_size = _optional_int(raw_cfg.get("max_image_size"))
    cfg.screens = _optional_int(raw_cfg.get("screens"))

    dl_dir = (raw_cfg.get("download_dir") or "").strip()
    if dl_dir:
        cfg.download_dir = _resolve_path(dl_dir, app_root)

    cfg.max_page_bytes = int(raw_cfg.get("max_page_bytes", cfg.max_page_bytes))
    cfg.timeout = float(raw_cfg.get("timeout", cfg.timeout))
    cfg.max_cooldown = float(raw_cfg.get("max_cooldown", cfg.max_cooldown))
    return cfg


def make_session(cfg: WallpaperConfig) -> requests.Session:
    s = requests.Session()
    if cfg.cookie_file and cfg.cookie_file.exists():
        cj = MozillaCookieJar()
        try:
            cj.load(str(cfg.cookie_file), ignore_discard=True, ignore_expires=True)
            s.cookies = cj
        except OSError as e:
            print(f"[FETCH] Warning: failed to load cookie file {cfg.cookie_file}: {e}")
    return s


def fetch_page(
    session: requests.Session,
    url: str,
    max_bytes: int = MAX_PAGE_BYTES,
    timeout: float = 15,
) -> Optional[str]:
    """
    Fetch at most max_bytes of a page and decode it leniently.

    Listings are requested newest first, so a truncated page still holds the
    rows that matter.
    """
    try:
        with session.get(url, timeout=timeout, stream=True) as resp:
            resp.raise_for_status()
            buf = bytearray()
            for chunk in resp.iter_content(chunk_size=8192):
                buf.extend(chunk[: max_bytes - len(buf)])
                if len(buf) >= max_bytes:
                    break
    except requests.RequestException as e:
        print(f"[FETCH] Error fetching {url}: {e}")
        return None
    return bytes(buf).decode("utf-8", errors="replace")


def fetch_listing(
    session: requests.Session,
    url: str,
    cfg: WallpaperConfig,
) -> Iterator[ListingEntry]:
    page_url = urljoin(url, SORT_NEWEST_FIRST)
    html = fetch_page(session, page_url, cfg.max_page_bytes, cfg.timeout)
    if html is None:
        raise WallpaperError(f"Can't fetch directory listing at {url}")

    entries = parse_listing(html)
    if entries is None:
        raise WallpaperError(f"Can't parse directory listing at {url}")
    return entries


def _safe_segment(segment: str) -> str:
    name = segment.replace("/", "_").replace("\\", "_")
    return "_" if name in ("", ".", "..") else name


def image_filename(url: str) -> str:
    name = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
    if not name:
        raise WallpaperError(f"Invalid image URL: {url}")
    return name


def image_path(url: str, dest_dir: Path) -> Path:
    """
    Local path for an image: dest_dir/<listing folder>/<file name>.

    Same-named files from different folders never share a path.
    """
    segments = urlparse(url).path.rstrip("/").split("/")
    folder = _safe_segment(unquote(segments[-2])) if len(segments) > 2 else "_"
    return dest_dir / folder / _safe_segment(image_filename(url))


def download_image(
    session: requests.Session,
    url: str,
    dest_dir: Optional[Path] = None,
    timeout: float = 15,
) -> Path:
    """
    Download an image into dest_dir (system temp dir by default).

    A file already stored for the same folder and name is reused.
    """
    dest_dir = dest_dir or Path(tempfile.gettempdir()) / "grzybwall"
    path = image_path(url, dest_dir)

    if path.exists():
        print(f"[DL] Reusing {path}")
        return path

    resp = session.get(url, timeout=timeout)
    resp.raise_for_status()

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".part")
    try:
        tmp_path.write_bytes(resp.content)
        tmp_path.replace(path)
    finally:
        tmp_path.unlink(missing_ok=True)

    print(f"[DL] Saved {url} -> {path}")
    return path
