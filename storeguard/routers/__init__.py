# API Routers - StoreGuard

from storeguard.routers import admin, auth, health

__all__ = ["admin", "auth", "health"]
