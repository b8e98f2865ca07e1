from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class PortalPaths:
    home: Path
    logs_dir: Path
    config_dir: Path

    @property
    def portal_config_path(self) -> Path:
        return self.config_dir / "portal.json"

    @property
    def log_path(self) -> Path:
        return self.logs_dir / "portal.log"


def resolve_portal_home(environ: Mapping[str, str] | None = None) -> Path:
    """``UNIREG_HOME`` when set, otherwise ``unireg`` under the XDG data directory."""

    env = os.environ if environ is None else environ

    raw = (env.get("UNIREG_HOME") or "").strip()
    if raw:
        home = Path(raw).expanduser()
        # Relative values are anchored at the user's home, never the CWD.
        return (home if home.is_absolute() else Path.home() / home).resolve()

    xdg = (env.get("XDG_DATA_HOME") or "").strip()
    data_dir = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return (data_dir / "unireg").resolve()


def ensure_portal_layout(home: Path) -> PortalPaths:
    home.mkdir(parents=True, exist_ok=True)

    logs_dir = home / "logs"
    config_dir = home / "config"

    for path in (logs_dir, config_dir):
        path.mkdir(parents=True, exist_ok=True)

    return PortalPaths(home=home, logs_dir=logs_dir, config_dir=config_dir)
