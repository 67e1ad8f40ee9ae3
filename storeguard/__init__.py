"""StoreGuard - authorization layer for multi-tenant store apps."""

__version__ = "1.0.0"
