#!/usr/bin/env python3
"""
Project identification from the editor's workspace context.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Iterable, List, Optional, Protocol
from urllib.parse import unquote, urlparse


class Workspace(Protocol):
    """What the tracker needs to know about the editor's workspace."""

    def current_project(self) -> str:
        ...

    def current_path(self) -> Optional[str]:
        ...


@dataclass
class WorkspaceFolder:
    name: str
    path: str


@dataclass
class EditorWorkspace:
    """Mutable snapshot of the editor's folders and active document.

    The editor host updates the fields as windows and documents change;
    the tracker only reads them.
    """

    folders: List[WorkspaceFolder] = field(default_factory=list)
    name: str = ""
    active_file: Optional[str] = None
    active_scheme: str = "file"

    @classmethod
    def from_paths(cls, paths: Iterable[str], name: str = "") -> "EditorWorkspace":
        folders = []
        for path in paths:
            resolved = Path(path).expanduser().resolve()
            folders.append(WorkspaceFolder(resolved.name, str(resolved)))
        return cls(folders=folders, name=name)

    def set_active_document(self, uri: str) -> bool:
        """Point at the document named by a path or URL; True if it changed."""
        parsed = urlparse(uri)
        scheme = parsed.scheme or "file"
        active_file = uri
        if parsed.scheme == "file":
            active_file = unquote(parsed.path)
        if (active_file, scheme) == (self.active_file, self.active_scheme):
            return False
        self.active_file = active_file
        self.active_scheme = scheme
        return True

    def folder_for(self, file_path: str) -> Optional[WorkspaceFolder]:
        target = PurePath(file_path)
        best: Optional[WorkspaceFolder] = None
        for folder in self.folders:
            root = PurePath(folder.path)
            if target == root or root in target.parents:
                if best is None or len(root.parts) > len(PurePath(best.path).parts):
                    best = folder
        return best

    def current_project(self) -> str:
        if not self.folders:
            return "Unknown Project"
        if not self.active_file:
            return "No Active File"

        folder = self.folder_for(self.active_file) if self.active_scheme == "file" else None
        if folder is None:
            return f"External/{external_project_name(self.active_file, self.active_scheme)}"

        if len(self.folders) > 1:
            return f"{self.name or 'Default Workspace'}/{folder.name}"
        return folder.name

    def current_path(self) -> Optional[str]:
        if self.active_file and self.active_scheme == "file":
            folder = self.folder_for(self.active_file)
            if folder is not None:
                return folder.path
            return str(PurePath(self.active_file).parent)
        if self.folders:
            return self.folders[0].path
        return None


def external_project_name(file_path: str, scheme: str = "file") -> str:
    """Name a file outside every workspace folder by its last two directories."""
    if scheme != "file":
        return "Virtual Files"
    folders = [part for part in re.split(r"[\\/]", file_path) if part][:-1]
    if len(folders) >= 2:
        return f"{folders[-2]}/{folders[-1]}"
    return "Other"


class StaticWorkspace:
    """A single project directory, used when running outside an editor."""

    def __init__(self, path: str, name: Optional[str] = None):
        self.path = str(Path(path).expanduser().resolve())
        self.name = name or Path(self.path).name or "Unknown Project"

    def current_project(self) -> str:
        return self.name

    def current_path(self) -> Optional[str]:
        return self.path
