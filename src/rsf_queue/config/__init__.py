"""
Configuration module for the RSF task queue.
"""

from rsf_queue.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
