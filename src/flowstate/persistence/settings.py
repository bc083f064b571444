"""Auto-save preferences that outlive any single open document."""

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from loguru import logger


@dataclass
class AutoSaveSettings:
    """Which bound destinations the auto-saver writes to besides the recovery draft."""

    auto_save_local_files: bool = False
    auto_save_named_store: bool = False

    @classmethod
    def load(cls, path: Path) -> "AutoSaveSettings":
        """Read settings, falling back to defaults for a missing or unreadable file."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return cls()
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable auto-save settings at {}", path, exc_info=True)
            return cls()
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed auto-save settings at {}", path)
            return cls()
        return cls(
            auto_save_local_files=data.get("auto_save_local_files") is True,
            auto_save_named_store=data.get("auto_save_named_store") is True,
        )

    def persist(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), sort_keys=True, indent=4) + "\n", encoding="utf-8")
