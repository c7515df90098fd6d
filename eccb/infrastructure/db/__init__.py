from .pool import close_pool, open_pool, ping

__all__ = ["close_pool", "open_pool", "ping"]
