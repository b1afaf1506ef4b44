from __future__ import annotations

import os
from pathlib import Path

ROOT = Path(os.environ.get("GRZYBWALL_HOME") or Path.home() / ".grzybwall").expanduser()
CONFIG_JSON = ROOT / "config.json"
