from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping

from .serialize import from_plain, to_plain

log = logging.getLogger("editcore.project_io")

FORMAT_VERSION = 1


def document_payload(state: Mapping[str, Any], keys) -> Dict[str, Any]:
    """Plain, JSON-ready form of the named document fields. Live handles are dropped."""
    return {
        "version": FORMAT_VERSION,
        "document": {k: to_plain(state[k], keep_opaque=False) for k in keys if k in state},
    }


def _write_atomically(target: Path, text: str) -> None:
    # Sibling temp file + rename; the old project stays intact until the rename.
    fd, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            fp.write(text)
            fp.flush()
            try:
                os.fsync(fp.fileno())
            except OSError as e:
                log.debug("fsync unsupported for %s: %s", tmp, e)
        os.replace(tmp, target)
    finally:
        if tmp.exists():
            tmp.unlink()


def save_project(store, path: str) -> None:
    """Write the store's document fields (tracks, clips, keyframes, markers) to `path`."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = document_payload(store.get_state(), store.DOCUMENT_KEYS)
    _write_atomically(target, json.dumps(payload, ensure_ascii=False, indent=2))
    log.info("Saved project to %s", target)


def load_project(path: str) -> Dict[str, Any]:
    """
    Read a project file back into live containers.

    Returns:
        Mapping of document field -> value, suitable for `TimelineStore.set_state`.

    Raises:
        ValueError: not a project file, or written by a newer format version.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict) or not isinstance(data.get("document"), dict):
        raise ValueError(f"Not a project file: {path}")
    version = data.get("version")
    if not isinstance(version, int) or version > FORMAT_VERSION:
        raise ValueError(f"Unsupported project version {version!r}: {path}")
    return {str(k): from_plain(v) for k, v in data["document"].items()}
