"""
RSF Task Queue - priority job queue for import and pre-optimization jobs.

Ships the persistent queue, the in-process worker, the pre-optimization
execution engine and a live WebSocket feed of task updates.
"""

from rsf_queue.__version__ import __version__, __version_info__, get_version

__all__ = ["__version__", "__version_info__", "get_version"]
