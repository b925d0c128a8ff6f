"""
Per-project memory: analyzer, record types and the on-disk cache.
"""

from .analyzer import ProjectAnalyzer
from .manager import ProjectMemoryManager
from .records import (
    FileChange,
    GitInfo,
    ProjectDescriptor,
    ProjectMemoryRecord,
    ProjectStats,
    is_well_formed,
    record_id,
)

__all__ = [
    "FileChange",
    "GitInfo",
    "ProjectAnalyzer",
    "ProjectDescriptor",
    "ProjectMemoryManager",
    "ProjectMemoryRecord",
    "ProjectStats",
    "is_well_formed",
    "record_id",
]
