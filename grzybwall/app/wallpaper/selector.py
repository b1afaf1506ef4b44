from __future__ import annotations

import random
from typing import Iterable, List, Optional
from urllib.parse import urljoin

from ..errors import WallpaperError
from ..listing.crawler import WallpaperConfig
from ..listing.parser import ListingEntry

PARENT_LABELS = ("parent directory", "..", "../")


def _link_text(entry: ListingEntry) -> str:
    link = entry.get_link()
    if link is None:
        return ""
    return link.get_text().strip()


def _is_parent_link(href: str, label: str) -> bool:
    return href in ("..", "../") or label.lower() in PARENT_LABELS


def find_newest_folder(
    entries: Iterable[ListingEntry],
    base_url: str,
    cfg: WallpaperConfig,
) -> str:
    """
    Return the absolute URL of the first dated folder link (href ending in
    "/") whose name has none of the blocked characters.

    The index is fetched newest first, so the first match is the newest folder.
    """
    for entry in entries:
        link = entry.get_link()
        if link is None or entry.get_date() is None:
            continue

        label = link.get_text()
        if any(ch in label for ch in cfg.folder_blocked_chars):
            continue

        href = link.get("href")
        if not href or not href.endswith("/"):
            continue

        return urljoin(base_url, href)

    raise WallpaperError("Cannot get the newest folder")


def _should_keep_image(href: str, cfg: WallpaperConfig) -> bool:
    lower = href.lower()
    if not any(lower.endswith("." + ext) for ext in cfg.image_exts):
        return False
    return not any(b in lower for b in cfg.blocked_names)


def collect_images(entries: Iterable[ListingEntry], cfg: WallpaperConfig) -> List[str]:
    images: List[str] = []
    for entry in entries:
        link = entry.get_link()
        if link is None:
            continue
        href = link.get("href") or ""
        if not href or _is_parent_link(href, _link_text(entry)):
            continue
        if not _should_keep_image(href, cfg):
            continue

        if cfg.max_image_size is not None:
            size = entry.get_size()
            if size is None or size > cfg.max_image_size:
                continue

        images.append(href)
    return images


def pick_images(
    images: List[str],
    folder_url: str,
    amount: int,
    rng: Optional[random.Random] = None,
) -> List[str]:
    if not images:
        raise WallpaperError(f"No images in {folder_url}")

    rng = rng or random.Random()
    chosen = rng.sample(images, min(amount, len(images)))
    return [urljoin(folder_url, href) for href in chosen]
