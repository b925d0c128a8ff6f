"""
Persisted record types for the project memory cache.

Python attributes are snake_case; the JSON written to disk uses the
camelCase field names the editor UI reads.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..providers.base import AIMessage, as_message

CHANGE_TYPES = ("created", "modified", "deleted")


def record_id(project_path: str) -> str:
    """Deterministic, filesystem-safe id for a project path."""
    return hashlib.sha256(project_path.encode("utf-8")).hexdigest()


@dataclass
class FileChange:
    file_path: str
    change_type: str
    timestamp: int
    diff: Optional[str] = None

    def __post_init__(self):
        if self.change_type not in CHANGE_TYPES:
            raise ValueError(f"Invalid change type: {self.change_type!r}")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "filePath": self.file_path,
            "changeType": self.change_type,
            "timestamp": self.timestamp,
        }
        if self.diff is not None:
            data["diff"] = self.diff
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileChange":
        return cls(
            file_path=data["filePath"],
            change_type=data["changeType"],
            timestamp=data["timestamp"],
            diff=data.get("diff"),
        )


def as_file_change(value: Any) -> FileChange:
    if isinstance(value, FileChange):
        return value
    if isinstance(value, dict):
        return FileChange.from_dict(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to FileChange")


@dataclass
class GitInfo:
    branch: str
    last_commit: str
    status: str

    def to_dict(self) -> Dict[str, str]:
        return {"branch": self.branch, "lastCommit": self.last_commit, "status": self.status}


@dataclass
class ProjectStats:
    total_files: int = 0
    total_lines: int = 0
    languages: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "totalLines": self.total_lines,
            "languages": dict(self.languages),
        }


@dataclass
class ProjectDescriptor:
    """
    Analyzer summary of a project directory.

    ``structure`` maps entry names to ``{"type": "directory", "children": {...}}``
    or ``{"type": "file", "lastModified": ms, "size": bytes}``. ``skipped`` lists
    the directories that could not be read, so a partial walk is visible.
    """

    project_path: str
    language: str = "unknown"
    framework: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    structure: Dict[str, Any] = field(default_factory=dict)
    open_files: List[str] = field(default_factory=list)
    recent_changes: List[FileChange] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "projectPath": self.project_path,
            "language": self.language,
            "dependencies": list(self.dependencies),
            "structure": self.structure,
            "openFiles": list(self.open_files),
            "recentChanges": [change.to_dict() for change in self.recent_changes],
        }
        if self.framework is not None:
            data["framework"] = self.framework
        if self.skipped:
            data["skipped"] = list(self.skipped)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectDescriptor":
        return cls(
            project_path=data.get("projectPath", ""),
            language=data.get("language") or "unknown",
            framework=data.get("framework"),
            dependencies=list(data.get("dependencies") or []),
            structure=data.get("structure") or {},
            open_files=list(data.get("openFiles") or []),
            recent_changes=[as_file_change(c) for c in data.get("recentChanges") or []],
            skipped=list(data.get("skipped") or []),
        )


@dataclass
class ProjectMemoryRecord:
    """
    The persisted unit: one per project path.

    ``metadata`` stays a plain mapping (``lastOpened``, ``openFiles``,
    ``recentChanges``, ``gitInfo``, ``userPreferences``, ``projectStats`` plus
    anything the caller stored) so partial updates can be merged shallowly.
    """

    id: str
    project_path: str
    timestamp: int
    context: ProjectDescriptor
    conversation_history: List[AIMessage] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def last_opened(self) -> float:
        value = self.metadata.get("lastOpened")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectPath": self.project_path,
            "timestamp": self.timestamp,
            "context": self.context.to_dict(),
            "conversationHistory": [msg.to_dict() for msg in self.conversation_history],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectMemoryRecord":
        return cls(
            id=data["id"],
            project_path=data["projectPath"],
            timestamp=data["timestamp"],
            context=ProjectDescriptor.from_dict(data["context"]),
            conversation_history=[as_message(m) for m in data["conversationHistory"]],
            metadata=dict(data["metadata"]),
        )


def is_well_formed(data: Any) -> bool:
    """Structural check applied to every record read from disk."""
    if not isinstance(data, dict):
        return False
    timestamp = data.get("timestamp")
    return (
        isinstance(data.get("id"), str)
        and isinstance(data.get("projectPath"), str)
        and isinstance(timestamp, (int, float))
        and not isinstance(timestamp, bool)
        and isinstance(data.get("context"), dict)
        and isinstance(data.get("conversationHistory"), list)
        and isinstance(data.get("metadata"), dict)
    )
