from .settings import AppSettings, settings

__all__ = ["AppSettings", "settings"]
