from .async_api import AsyncPackt
from .cache import Cache

__all__ = ["AsyncPackt", "Cache"]
