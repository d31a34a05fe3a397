# =============================================================================
# pos_core/__init__.py
# Offline-first core for the restaurant point-of-sale app
# =============================================================================
"""
pos_core - data access, offline queue and session lock for the POS app.

Usage:
    from pos_core import AppContext

    ctx = await AppContext.create()
    result = await ctx.data_service.add_document("orders", {...})
    if result.queued:
        print("Saved offline, will sync later")
    await ctx.close()
"""

from .config import AppConfig, BackendMode, load_config
from .context import AppContext

__version__ = "1.0.0"

__all__ = ["AppConfig", "BackendMode", "load_config", "AppContext", "__version__"]
