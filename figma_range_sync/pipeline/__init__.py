"""
Pipeline stages for the Figma to Range sync.

Pure transformations between the Figma listings and the Range payloads;
all network I/O lives in the services layer.
"""

from .activity import extract_active_users, filter_recent_files
from .payloads import build_payloads, build_payloads_for_entries

__all__ = [
    "build_payloads",
    "build_payloads_for_entries",
    "extract_active_users",
    "filter_recent_files",
]
