"""
Best-effort project analysis: file tree, language, framework, dependencies,
line counts and a git snapshot.

Nothing in here raises on I/O trouble. Unreadable directories are skipped
and reported in ``ProjectDescriptor.skipped``; unreadable manifests simply
contribute nothing.
"""

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from .records import GitInfo, ProjectDescriptor, ProjectStats

logger = logging.getLogger(__name__)

MAX_DEPTH = 3

IGNORED_DIRS = {"node_modules", "dist", "build", "out", "__pycache__", "venv"}

SOURCE_LANGUAGES = {
    ".js": "javascript",
    ".ts": "typescript",
    ".jsx": "javascript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".cs": "csharp",
    ".cpp": "cpp",
    ".c": "c",
    ".go": "go",
    ".rs": "rust",
    ".php": "php",
    ".rb": "ruby",
    ".swift": "swift",
    ".kt": "kotlin",
}

# Histogram buckets also cover markup and data files
STATS_LANGUAGES = {
    **SOURCE_LANGUAGES,
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".xml": "xml",
    ".md": "markdown",
}

# package.json dependency -> framework, checked in order
JS_FRAMEWORKS = [
    ("next", "Next.js"),
    ("react", "React"),
    ("vue", "Vue.js"),
    ("angular", "Angular"),
    ("@angular/core", "Angular"),
    ("express", "Express.js"),
]

PYTHON_MANIFESTS = ("requirements.txt", "setup.py", "pyproject.toml")

REQUIREMENT_NAME_RE = re.compile(r"[\s=<>!~;\[@]")


def is_ignored(name: str) -> bool:
    return name.startswith(".") or name in IGNORED_DIRS


class ProjectAnalyzer:
    """Computes ProjectDescriptor and ProjectStats for a directory."""

    def __init__(self, max_depth: int = MAX_DEPTH):
        self.max_depth = max_depth

    def describe(self, project_path: str) -> ProjectDescriptor:
        skipped: List[str] = []
        structure = self.build_file_tree(project_path, skipped=skipped)
        return ProjectDescriptor(
            project_path=project_path,
            language=self.detect_primary_language(structure),
            framework=self.detect_framework(structure, project_path),
            dependencies=self.get_dependencies(project_path),
            structure=structure,
            skipped=skipped,
        )

    def build_file_tree(
        self, dir_path: str, depth: int = 0, skipped: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Walk ``dir_path`` up to ``max_depth`` levels. Directories at the depth
        bound appear with empty children. Symlinks are not followed.
        """
        tree: Dict[str, Any] = {}
        if depth >= self.max_depth:
            return tree

        try:
            with os.scandir(dir_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Failed to read directory %s: %s", dir_path, e)
            if skipped is not None:
                skipped.append(dir_path)
            return tree

        for entry in entries:
            if is_ignored(entry.name):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    tree[entry.name] = {
                        "type": "directory",
                        "children": self.build_file_tree(entry.path, depth + 1, skipped),
                    }
                else:
                    st = entry.stat(follow_symlinks=False)
                    tree[entry.name] = {
                        "type": "file",
                        "lastModified": int(st.st_mtime * 1000),
                        "size": st.st_size,
                    }
            except OSError as e:
                logger.warning("Failed to stat %s: %s", entry.path, e)
                if skipped is not None:
                    skipped.append(entry.path)

        return tree

    def detect_primary_language(self, structure: Dict[str, Any]) -> str:
        counts: Dict[str, int] = {}

        def count_extensions(tree):
            for name, node in tree.items():
                if node.get("type") == "file":
                    ext = os.path.splitext(name)[1].lower()
                    if ext:
                        counts[ext] = counts.get(ext, 0) + 1
                elif node.get("children"):
                    count_extensions(node["children"])

        count_extensions(structure)

        # Ties go to the extension seen first
        max_count = 0
        primary = "unknown"
        for ext, count in counts.items():
            if count > max_count and ext in SOURCE_LANGUAGES:
                max_count = count
                primary = SOURCE_LANGUAGES[ext]
        return primary

    def _package_json_deps(self, project_path: str) -> Optional[Dict[str, Any]]:
        path = os.path.join(project_path, "package.json")
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                package = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug("Could not read %s: %s", path, e)
            return None
        if not isinstance(package, dict):
            return None

        deps: Dict[str, Any] = {}
        for key in ("dependencies", "devDependencies"):
            section = package.get(key)
            if isinstance(section, dict):
                deps.update(section)
        return deps

    def detect_framework(self, structure: Dict[str, Any], project_path: str) -> Optional[str]:
        """First matching check wins; None when nothing matches."""
        if "package.json" in structure:
            deps = self._package_json_deps(project_path) or {}
            for dependency, framework in JS_FRAMEWORKS:
                if dependency in deps:
                    return framework

        if any(name in structure for name in PYTHON_MANIFESTS):
            return "Python"
        if "Cargo.toml" in structure:
            return "Rust"
        if "go.mod" in structure:
            return "Go"
        return None

    def get_dependencies(self, project_path: str) -> List[str]:
        dependencies: List[str] = list((self._package_json_deps(project_path) or {}).keys())

        requirements = os.path.join(project_path, "requirements.txt")
        if os.path.isfile(requirements):
            try:
                with open(requirements, "r", encoding="utf-8") as f:
                    lines = f.read().splitlines()
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Could not read %s: %s", requirements, e)
                lines = []

            for line in lines:
                line = line.strip()
                if not line or line.startswith(("#", "-")):
                    continue
                name = REQUIREMENT_NAME_RE.split(line, 1)[0]
                if name:
                    dependencies.append(name)

        # Order is irrelevant but duplicates are dropped
        return list(dict.fromkeys(dependencies))

    def stats(self, project_path: str) -> ProjectStats:
        """Full walk with no depth bound; binary files count but add no lines."""
        result = ProjectStats()

        def on_error(error):
            logger.warning("Failed to count files in %s: %s", error.filename, error)

        for dir_path, dir_names, file_names in os.walk(project_path, onerror=on_error):
            dir_names[:] = sorted(d for d in dir_names if not is_ignored(d))

            for name in sorted(file_names):
                if name.startswith("."):
                    continue
                result.total_files += 1
                language = STATS_LANGUAGES.get(os.path.splitext(name)[1].lower(), "other")
                result.languages[language] = result.languages.get(language, 0) + 1

                try:
                    with open(os.path.join(dir_path, name), "r", encoding="utf-8") as f:
                        content = f.read()
                except (OSError, UnicodeDecodeError):
                    continue
                result.total_lines += content.count("\n") + 1

        return result

    def git_info(self, project_path: str) -> Optional[GitInfo]:
        """Branch, short commit id and porcelain status; None outside a repository."""
        if not os.path.exists(os.path.join(project_path, ".git")):
            return None

        try:
            import git
        except ImportError:
            logger.warning("GitPython is unavailable, skipping git snapshot")
            return None

        try:
            repo = git.Repo(project_path)
            branch = "HEAD" if repo.head.is_detached else repo.active_branch.name
            return GitInfo(
                branch=branch,
                last_commit=repo.head.commit.hexsha[:8],
                status=repo.git.status("--porcelain").strip(),
            )
        except (git.exc.GitError, ValueError, OSError) as e:
            logger.warning("Failed to get git info for %s: %s", project_path, e)
            return None
