from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from .model import (
    CURVE_EDITOR_HEIGHT,
    DEFAULT_TIMELINE_DURATION,
    MAX_CURVE_EDITOR_HEIGHT,
    MAX_TRACK_HEIGHT,
    MIN_CURVE_EDITOR_HEIGHT,
    MIN_TRACK_HEIGHT,
)


def _int_in(raw: Any, default: int, lo: int, hi: int) -> int:
    try:
        v = int(raw)
    except Exception:
        v = default
    return max(lo, min(hi, v))


class ConfigStore:
    """
    Simple JSON config store.

    Default location: ~/.editcore/config.json
    """

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = Path(root_dir)
        self.path = self.root_dir / "config.json"

    @staticmethod
    def default() -> "ConfigStore":
        return ConfigStore(Path.home() / ".editcore")

    def load(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return data
        except FileNotFoundError:
            return self.default_config()
        except Exception:
            # Corrupted file; fall back to defaults.
            return self.default_config()
        return self.default_config()

    def save(self, data: Dict[str, Any]) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def set(self, key: str, value: Any) -> None:
        cfg = self.load()
        cfg[key] = value
        self.save(cfg)

    def default_config(self) -> Dict[str, Any]:
        return {
            "history_limit": 50,
            "curve_editor_height": CURVE_EDITOR_HEIGHT,
            "video_track_height": 60,
            "audio_track_height": 40,
            "default_timeline_duration": int(DEFAULT_TIMELINE_DURATION),
        }

    def history_limit(self) -> int:
        return _int_in(self.load().get("history_limit", 50), 50, 1, 500)

    def curve_editor_height(self) -> int:
        return _int_in(
            self.load().get("curve_editor_height", CURVE_EDITOR_HEIGHT),
            CURVE_EDITOR_HEIGHT,
            MIN_CURVE_EDITOR_HEIGHT,
            MAX_CURVE_EDITOR_HEIGHT,
        )

    def video_track_height(self) -> int:
        return _int_in(self.load().get("video_track_height", 60), 60, MIN_TRACK_HEIGHT, MAX_TRACK_HEIGHT)

    def audio_track_height(self) -> int:
        return _int_in(self.load().get("audio_track_height", 40), 40, MIN_TRACK_HEIGHT, MAX_TRACK_HEIGHT)

    def default_timeline_duration(self) -> int:
        default = int(DEFAULT_TIMELINE_DURATION)
        return _int_in(self.load().get("default_timeline_duration", default), default, 1, 86400)
