"""
Z App Store Utility Modules

File helpers shared by the registry engine.
"""

from .atomic_write import atomic_write_json, safe_backup

__all__ = [
    "atomic_write_json",
    "safe_backup",
]
