from __future__ import annotations

import os
import platform
import shutil
import subprocess
from pathlib import Path
from typing import List, Sequence

from ..errors import WallpaperError


def _output(cmd: List[str]) -> str:
    try:
        return subprocess.check_output(cmd, text=True, stderr=subprocess.DEVNULL)
    except (OSError, subprocess.CalledProcessError):
        return ""


def screen_count() -> int:
    """
    Number of attached displays, at least 1.
    """
    system = platform.system()

    if system == "Windows":
        import ctypes

        # SM_CMONITORS
        return max(1, ctypes.windll.user32.GetSystemMetrics(80))

    if system == "Darwin":
        out = _output(["system_profiler", "SPDisplaysDataType"])
        return max(1, out.count("Resolution:"))

    if shutil.which("xrandr"):
        out = _output(["xrandr", "--listmonitors"])
        first = out.splitlines()[0] if out else ""
        if first.startswith("Monitors:"):
            try:
                return max(1, int(first.split(":", 1)[1]))
            except ValueError:
                pass
    return 1


def _set_windows(path: Path) -> None:
    import ctypes

    # SPI_SETDESKWALLPAPER, SPIF_UPDATEINIFILE | SPIF_SENDCHANGE
    if not ctypes.windll.user32.SystemParametersInfoW(20, 0, str(path), 3):
        raise WallpaperError(f"SystemParametersInfoW failed for {path}")


def _applescript_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _set_macos(paths: Sequence[Path]) -> None:
    for i, path in enumerate(paths):
        script = f"""
        tell application "System Events"
            tell desktop {i + 1}
                set picture to "{_applescript_string(str(path))}"
            end tell
        end tell
        """
        subprocess.run(["osascript", "-e", script], check=True, capture_output=True)


def _set_linux(paths: Sequence[Path]) -> None:
    de = os.environ.get("XDG_CURRENT_DESKTOP", "").lower()
    first = paths[0]
    uri = first.as_uri()

    if "cinnamon" in de:
        subprocess.run(
            ["gsettings", "set", "org.cinnamon.desktop.background", "picture-uri", uri],
            check=True,
        )
        return

    if "mate" in de:
        subprocess.run(
            ["gsettings", "set", "org.mate.background", "picture-filename", str(first)],
            check=True,
        )
        return

    if any(name in de for name in ("gnome", "unity", "budgie")):
        for key in ("picture-uri", "picture-uri-dark"):
            subprocess.run(
                ["gsettings", "set", "org.gnome.desktop.background", key, uri],
                check=True,
            )
        subprocess.run(
            ["gsettings", "set", "org.gnome.desktop.background", "picture-options", "zoom"],
            check=True,
        )
        return

    if "xfce" in de and shutil.which("xfconf-query"):
        subprocess.run(
            [
                "xfconf-query",
                "-c",
                "xfce4-desktop",
                "-p",
                "/backdrop/screen0/monitor0/workspace0/last-image",
                "-s",
                str(first),
            ],
            check=True,
        )
        return

    # feh assigns one image per screen, in order.
    if shutil.which("feh"):
        subprocess.run(["feh", "--bg-fill", *(str(p) for p in paths)], check=True)
        return

    raise WallpaperError(f"Unsupported desktop environment: {de or 'unknown'}")


def set_wallpapers(paths: Sequence[Path]) -> None:
    """
    Set one image per screen where the desktop allows it; otherwise the first
    image is used everywhere.
    """
    if not paths:
        raise WallpaperError("No wallpaper files to set")

    paths = [Path(p).resolve() for p in paths]
    for p in paths:
        if not p.is_file():
            raise FileNotFoundError(p)

    system = platform.system()
    print(f"[WALL] Setting {len(paths)} wallpaper(s) on {system}")

    if system == "Windows":
        _set_windows(paths[0])
    elif system == "Darwin":
        _set_macos(paths)
    elif system == "Linux":
        _set_linux(paths)
    else:
        raise WallpaperError(f"Unsupported operating system: {system}")
