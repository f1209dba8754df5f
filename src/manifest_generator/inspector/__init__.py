"""
Package inspection.

Locates and decodes the Info.plist of an application archive.
"""

from .archive import INFO_PLIST_PATTERN, ArchiveInspector, remove_scratch_file
from .plist import DecodeStrategy, decode_plist

__all__ = [
    "ArchiveInspector",
    "DecodeStrategy",
    "INFO_PLIST_PATTERN",
    "decode_plist",
    "remove_scratch_file",
]
