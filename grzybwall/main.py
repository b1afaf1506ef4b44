from __future__ import annotations

import argparse
import json
import subprocess
import time
from typing import Callable, Optional

import requests

from grzybwall.app.errors import WallpaperError
from grzybwall.app.listing.crawler import (
    DEFAULT_INDEX_URL,
    WallpaperConfig,
    download_image,
    fetch_listing,
    load_wallpaper_config,
    make_session,
)
from grzybwall.app.paths import CONFIG_JSON, ROOT
from grzybwall.app.wallpaper.selector import collect_images, find_newest_folder, pick_images
from grzybwall.app.wallpaper.setter import screen_count, set_wallpapers

RETRYABLE_ERRORS = (
    WallpaperError,
    requests.RequestException,
    subprocess.CalledProcessError,
    OSError,
)


# ---------- Banner & setup ----------


def print_banner() -> None:
    print("=== grzybwall ===")
    print("Mushroom wallpapers from the grzyby.pl photo index\n")


def ensure_config_files() -> None:
    """
    If config.json doesn't exist, create a demo version.
    """
    if CONFIG_JSON.exists():
        return

    demo_cfg = {
        "index_url": DEFAULT_INDEX_URL,
        "cookie": "",
        "image_extensions": ["jpg", "jpeg", "png"],
        "blocked_names": ["is.", "icon."],
        "max_image_size": None,
        "screens": None,
        "download_dir": "",
    }
    try:
        ROOT.mkdir(parents=True, exist_ok=True)
        CONFIG_JSON.write_text(json.dumps(demo_cfg, indent=2), encoding="utf-8")
    except OSError as e:
        print(f"[SETUP] Could not create {CONFIG_JSON}: {e}\n")
        return
    print(f"[SETUP] Created demo config.json at {CONFIG_JSON}")
    print("        Edit this file to change the index URL, filters or download_dir.\n")


def load_config() -> dict:
    """
    Load config.json. Returns {} on error/missing.
    """
    if not CONFIG_JSON.exists():
        return {}
    try:
        with CONFIG_JSON.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error parsing config.json: {e}")
        return {}
    except OSError as e:
        print(f"Error reading config.json: {e}")
        return {}
    if not isinstance(data, dict):
        print("Error: config.json must contain an object.")
        return {}
    return data


def load_wallpaper_settings() -> WallpaperConfig:
    """
    Build the wallpaper config; bad values fall back to the defaults.
    """
    try:
        return load_wallpaper_config(load_config(), ROOT)
    except (TypeError, ValueError, AttributeError) as e:
        print(f"[SETUP] Invalid config.json: {e}")
        print("        Using default settings.\n")
        return WallpaperConfig()


# ---------- Wallpaper run ----------


def set_grzyb_wallpaper(cfg: WallpaperConfig) -> None:
    amount = cfg.screens or screen_count()
    session = make_session(cfg)

    print(f"[FETCH] Reading index {cfg.index_url}")
    folder_url = find_newest_folder(
        fetch_listing(session, cfg.index_url, cfg), cfg.index_url, cfg
    )
    print(f"[SELECT] Newest folder: {folder_url}")

    images = collect_images(fetch_listing(session, folder_url, cfg), cfg)
    print(f"[SELECT] {len(images)} candidate images, picking {amount}")
    image_urls = pick_images(images, folder_url, amount)

    files = [
        download_image(session, url, cfg.download_dir, cfg.timeout)
        for url in image_urls
    ]
    set_wallpapers(files)
    print("[WALL] Done.\n")


def run_with_backoff(
    cfg: WallpaperConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Retry the wallpaper run, doubling the pause after each failure.

    Gives up once the pause would exceed cfg.max_cooldown.
    """
    cooldown = 1.0
    while True:
        try:
            set_grzyb_wallpaper(cfg)
            return 0
        except RETRYABLE_ERRORS as e:
            print(f"[RETRY] {e}")
            if cooldown > cfg.max_cooldown:
                print("[RETRY] Giving up.")
                return 1
            print(f"[RETRY] Next attempt in {cooldown:.0f}s")
            sleep(cooldown)
            cooldown *= 2


# ---------- Browsing ----------


def _format_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    if size < 1024:
        return f"{size}B"
    for unit in ("K", "M"):
        size = size / 1024
        if size < 1024:
            return f"{size:.1f}{unit}"
    return f"{size / 1024:.1f}G"


def show_listing(cfg: WallpaperConfig, url: str) -> None:
    session = make_session(cfg)
    try:
        entries = fetch_listing(session, url, cfg)
    except WallpaperError as e:
        print(f"  !! {e}\n")
        return

    print(f"\n=== {url} ===\n")
    count = 0
    for entry in entries:
        link = entry.get_link()
        name = link.get_text().strip() if link is not None else "?"
        date = entry.get_date()
        date_str = date.strftime("%Y-%m-%d %H:%M") if date else "-"
        print(f"{name:40s} {_format_size(entry.get_size()):>8s}  {date_str}")
        count += 1
    print(f"\n{count} entries.\n")


def show_newest_folder(cfg: WallpaperConfig) -> None:
    session = make_session(cfg)
    try:
        folder_url = find_newest_folder(
            fetch_listing(session, cfg.index_url, cfg), cfg.index_url, cfg
        )
    except WallpaperError as e:
        print(f"  !! {e}\n")
        return
    show_listing(cfg, folder_url)


# ---------- Main loop ----------


def parse_args(args: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Set desktop wallpapers from an Apache directory listing of photos.",
    )
    parser.add_argument(
        "--set",
        dest="set_now",
        action="store_true",
        default=False,
        help="Set the wallpaper right away (with retries) and exit.",
    )
    return parser.parse_args(args)


def interactive_menu() -> None:
    print_banner()
    ensure_config_files()

    while True:
        cfg = load_wallpaper_settings()
        print("1. Set wallpaper now")
        print("2. Browse index")
        print("3. Browse newest folder")
        print("0. Quit")
        choice = input("Select an option: ").strip()

        if choice == "1":
            try:
                set_grzyb_wallpaper(cfg)
            except RETRYABLE_ERRORS as e:
                print(f"  !! {e}\n")
        elif choice == "2":
            show_listing(cfg, cfg.index_url)
        elif choice == "3":
            show_newest_folder(cfg)
        elif choice == "0" or choice == "":
            print("Bye.")
            break
        else:
            print("Invalid choice.\n")


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    if args.set_now:
        ensure_config_files()
        return run_with_backoff(load_wallpaper_settings())

    interactive_menu()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
