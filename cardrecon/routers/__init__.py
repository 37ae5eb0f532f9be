# cardrecon/routers/__init__.py

from cardrecon.routers import health
from cardrecon.routers import reconcile
from cardrecon.routers import matches
from cardrecon.routers import merchants

__all__ = ["health", "reconcile", "matches", "merchants"]
