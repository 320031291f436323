"""The project hierarchy file.

One project per line; the number of leading tabs gives the depth, and a line
becomes a child of the closest preceding line indented by one tab less.
Everything after ``#`` is a comment. A description may follow the name in
curly brackets::

    Engineering{Product work}
    \tbackend
    \tfrontend
    Admin
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence

from .models import ProjectPath

logger = logging.getLogger(__name__)

FILE_HEADER = (
    "# Syntax:\n"
    "# main_project[{tooltip}]\n"
    "# \tsub_project[{tooltip}]\n"
    "# \t\tsub_sub_project[{tooltip}]\n"
    "\n"
)

DEFAULT_PROJECTS = FILE_HEADER + (
    "Admin{Meetings, email and planning}\n"
    "Development\n"
    "\tdesign\n"
    "\timplementation\n"
)


@dataclass(slots=True)
class ProjectNode:
    name: str
    description: Optional[str] = None
    children: list["ProjectNode"] = field(default_factory=list)

    def child(self, name: str) -> Optional["ProjectNode"]:
        for node in self.children:
            if node.name == name:
                return node
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "children": [child.to_dict() for child in self.children],
        }


class ProjectHierarchy:
    """An ordered forest of projects addressed by paths of names."""

    def __init__(self, roots: Optional[list[ProjectNode]] = None) -> None:
        self.roots: list[ProjectNode] = roots if roots is not None else []

    @classmethod
    def parse(cls, text: str) -> "ProjectHierarchy":
        roots: list[ProjectNode] = []
        chain: list[ProjectNode] = []
        for raw_line in text.splitlines():
            line = raw_line.split("#", 1)[0]
            if not line.strip():
                continue
            depth = len(line) - len(line.lstrip("\t"))
            line = line[depth:]
            if depth > len(chain):
                logger.warning(
                    "Project %r is indented too deeply; attaching it at depth %d.",
                    line.strip(),
                    len(chain),
                )
                depth = len(chain)
            del chain[depth:]
            node = ProjectNode(name=_extract_name(line), description=_extract_description(line))
            if depth == 0:
                roots.append(node)
            else:
                chain[depth - 1].children.append(node)
            chain.append(node)
        return cls(roots)

    @classmethod
    def load(cls, path: Path) -> "ProjectHierarchy":
        with Path(path).open(encoding="utf-8") as handle:
            return cls.parse(handle.read())

    @classmethod
    def load_or_create(cls, path: Path) -> "ProjectHierarchy":
        """Load the projects file, creating it from a template when missing."""
        projects_path = Path(path)
        if not projects_path.exists():
            logger.info("Creating projects file at %s", projects_path)
            projects_path.parent.mkdir(parents=True, exist_ok=True)
            with projects_path.open("w", encoding="utf-8") as handle:
                handle.write(DEFAULT_PROJECTS)
        return cls.load(projects_path)

    def dumps(self) -> str:
        lines: list[str] = []

        def _write(nodes: list[ProjectNode], depth: int) -> None:
            for node in nodes:
                suffix = f"{{{node.description}}}" if node.description else ""
                lines.append("\t" * depth + node.name + suffix)
                _write(node.children, depth + 1)

        _write(self.roots, 0)
        return FILE_HEADER + "".join(line + "\n" for line in lines)

    def save(self, path: Path) -> None:
        with Path(path).open("w", encoding="utf-8") as handle:
            handle.write(self.dumps())

    def top_level_projects(self) -> list[str]:
        return [node.name for node in self.roots]

    def find(self, path: Sequence[str]) -> Optional[ProjectNode]:
        nodes = self.roots
        found: Optional[ProjectNode] = None
        for name in path:
            found = next((node for node in nodes if node.name == name), None)
            if found is None:
                return None
            nodes = found.children
        return found

    def __contains__(self, path: Sequence[str]) -> bool:
        return bool(path) and self.find(path) is not None

    def paths(self) -> Iterator[ProjectPath]:
        """Yield every path in depth-first order."""

        def _walk(nodes: list[ProjectNode], prefix: ProjectPath) -> Iterator[ProjectPath]:
            for node in nodes:
                path = prefix + (node.name,)
                yield path
                yield from _walk(node.children, path)

        return _walk(self.roots, ())

    def add_child(
        self, parent: Sequence[str], name: str, description: Optional[str] = None
    ) -> ProjectPath:
        """Add a project under ``parent`` (an empty parent adds a top-level project)."""
        name = name.strip()
        if not name or any(ch in name for ch in ",#{}\t"):
            raise ValueError(f"Invalid project name: {name!r}")
        if parent:
            parent_node = self.find(parent)
            if parent_node is None:
                raise KeyError("/".join(parent))
            siblings = parent_node.children
        else:
            siblings = self.roots
        if any(node.name == name for node in siblings):
            raise ValueError(f"Project {name!r} already exists")
        siblings.append(ProjectNode(name=name, description=(description or "").strip() or None))
        return tuple(parent) + (name,)

    def remove(self, path: Sequence[str]) -> ProjectNode:
        if not path:
            raise KeyError("empty path")
        if len(path) == 1:
            siblings = self.roots
        else:
            parent_node = self.find(path[:-1])
            if parent_node is None:
                raise KeyError("/".join(path))
            siblings = parent_node.children
        for index, node in enumerate(siblings):
            if node.name == path[-1]:
                return siblings.pop(index)
        raise KeyError("/".join(path))

    def to_list(self) -> list[dict]:
        return [node.to_dict() for node in self.roots]


def _extract_name(line: str) -> str:
    left = line.find("{")
    if left == -1:
        return line.strip()
    return line[:left].strip()


def _extract_description(line: str) -> Optional[str]:
    left = line.find("{")
    right = line.rfind("}")
    if left == -1 or right == -1 or right < left:
        return None
    return line[left + 1 : right].strip() or None
