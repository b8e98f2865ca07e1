from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

import uvicorn

from unireg.app import create_app
from unireg.config import load_portal_config
from unireg.home import ensure_portal_layout, resolve_portal_home


def main() -> None:
    home = resolve_portal_home()
    paths = ensure_portal_layout(home)

    config = load_portal_config(paths)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            RotatingFileHandler(
                paths.log_path,
                maxBytes=config.logging.max_size_mb * 1024 * 1024,
                backupCount=config.logging.backup_count,
                encoding="utf-8",
            ),
            logging.StreamHandler(),
        ],
    )

    host = os.environ.get("UNIREG_BIND") or config.network.bind_host

    env_port = os.environ.get("UNIREG_PORT")
    port = int(env_port) if env_port else config.network.port

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
