from .handler import PlatformHandler

__all__ = ["PlatformHandler"]
