from __future__ import annotations
from pathlib import PurePath
from typing import List, Protocol

"""File tree interface used by the result store reader.

The reader never touches ``os`` or ``pathlib.Path`` directly; it walks a
``FileTree`` so the path grammar can be exercised against an in-memory tree.
"""

class FileTree(Protocol):
    """Read-only view of a directory hierarchy."""
    def exists(self, path: PurePath) -> bool: ...
    def is_dir(self, path: PurePath) -> bool: ...
    def list_dir(self, path: PurePath) -> List[str]: ...
    def read_text(self, path: PurePath) -> str: ...
