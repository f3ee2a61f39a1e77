from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .model import creates_cycle, new_id
from .serialize import record


@record
@dataclass
class MediaFile:
    id: str
    name: str
    kind: str  # video | audio | image
    path: str = ""
    duration: Optional[float] = None
    has_audio: bool = False
    parent_id: Optional[str] = None
    # Live decoder/file object; never copied into snapshots or project files.
    handle: Any = None


@record
@dataclass
class MediaFolder:
    id: str
    name: str
    parent_id: Optional[str] = None


class MediaCatalog:
    """
    Imported media and its folder tree.

    Importing itself (probing, proxies, thumbnails) happens elsewhere; this
    store only keeps the catalog entries so timeline undo can bring back media
    that an action removed.
    """

    STATE_KEYS = ("files", "folders", "selected_ids", "expanded_folder_ids")

    def __init__(self) -> None:
        self.files: List[MediaFile] = []
        self.folders: List[MediaFolder] = []
        self.selected_ids: Set[str] = set()
        self.expanded_folder_ids: Set[str] = set()

    def get_state(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in self.STATE_KEYS}

    def set_state(self, partial: Mapping[str, Any]) -> None:
        """Replace the named fields. Restored files keep the live handle of the file with the same id."""
        if "files" in partial:
            live = {f.id: f.handle for f in self.files}
            self.files = [
                replace(f, handle=live[f.id]) if live.get(f.id) is not None else f
                for f in partial["files"]
            ]
        for k in ("folders", "selected_ids", "expanded_folder_ids"):
            if k in partial:
                setattr(self, k, partial[k])

    # ---------- files ----------

    def get_file(self, file_id: Optional[str]) -> Optional[MediaFile]:
        for f in self.files:
            if f.id == file_id:
                return f
        return None

    def add_file(
        self,
        name: str,
        kind: str,
        path: str = "",
        duration: Optional[float] = None,
        has_audio: bool = False,
        parent_id: Optional[str] = None,
        handle: Any = None,
    ) -> str:
        f = MediaFile(
            id=new_id("media"),
            name=str(name),
            kind=str(kind),
            path=str(path or ""),
            duration=float(duration) if duration is not None else None,
            has_audio=bool(has_audio),
            parent_id=parent_id if self._folder(parent_id) is not None else None,
            handle=handle,
        )
        self.files = [*self.files, f]
        return f.id

    def remove_file(self, file_id: str) -> None:
        self.files = [f for f in self.files if f.id != file_id]
        self.selected_ids = self.selected_ids - {file_id}

    def rename_file(self, file_id: str, name: str) -> None:
        self.files = [replace(f, name=str(name)) if f.id == file_id else f for f in self.files]

    # ---------- folders ----------

    def _folder(self, folder_id: Optional[str]) -> Optional[MediaFolder]:
        for f in self.folders:
            if f.id == folder_id:
                return f
        return None

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        folder = MediaFolder(
            id=new_id("folder"),
            name=str(name),
            parent_id=parent_id if self._folder(parent_id) is not None else None,
        )
        self.folders = [*self.folders, folder]
        self.expanded_folder_ids = self.expanded_folder_ids | {folder.id}
        return folder.id

    def remove_folder(self, folder_id: str) -> None:
        """Delete a folder; its files and subfolders move up to its parent."""
        folder = self._folder(folder_id)
        if folder is None:
            return
        up = folder.parent_id
        self.folders = [
            replace(f, parent_id=up) if f.parent_id == folder_id else f for f in self.folders if f.id != folder_id
        ]
        self.files = [replace(f, parent_id=up) if f.parent_id == folder_id else f for f in self.files]
        self.selected_ids = self.selected_ids - {folder_id}
        self.expanded_folder_ids = self.expanded_folder_ids - {folder_id}

    def rename_folder(self, folder_id: str, name: str) -> None:
        self.folders = [replace(f, name=str(name)) if f.id == folder_id else f for f in self.folders]

    def toggle_folder_expanded(self, folder_id: str) -> None:
        self.expanded_folder_ids = self.expanded_folder_ids ^ {folder_id}

    def move_to_folder(self, item_ids: Iterable[str], folder_id: Optional[str]) -> None:
        if folder_id is not None and self._folder(folder_id) is None:
            return
        ids = set(item_ids)
        self.files = [replace(f, parent_id=folder_id) if f.id in ids else f for f in self.files]
        parents = {f.id: f.parent_id for f in self.folders}
        self.folders = [
            replace(f, parent_id=folder_id) if f.id in ids and not creates_cycle(parents, f.id, folder_id) else f
            for f in self.folders
        ]

    # ---------- selection ----------

    def set_selection(self, ids: Iterable[str]) -> None:
        self.selected_ids = set(ids)

    def add_to_selection(self, item_id: str) -> None:
        self.selected_ids = self.selected_ids | {item_id}

    def remove_from_selection(self, item_id: str) -> None:
        self.selected_ids = self.selected_ids - {item_id}

    def clear_selection(self) -> None:
        self.selected_ids = set()
