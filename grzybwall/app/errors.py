from __future__ import annotations


class WallpaperError(RuntimeError):
    """Raised when a wallpaper run cannot continue; the retry loop reports it."""
