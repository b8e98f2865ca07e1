from unireg.config import PortalConfig, load_portal_config
from unireg.home import PortalPaths, ensure_portal_layout, resolve_portal_home

__version__ = "0.1.0"

__all__ = [
    "PortalConfig",
    "PortalPaths",
    "__version__",
    "ensure_portal_layout",
    "load_portal_config",
    "resolve_portal_home",
]
