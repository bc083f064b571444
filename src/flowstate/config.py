"""Configuration constants for flowstate."""

import os
from pathlib import Path

# History depth. Oldest snapshots are dropped first.
MAX_HISTORY = 50

# Quiet period before an auto-save cycle starts.
AUTOSAVE_DELAY_MS = 2000

# Debounce window for coalescing arrow-key nudges into one commit.
NUDGE_FLUSH_DELAY_MS = 400

# Rendered size of a component node, used for membership and navigation geometry.
COMPONENT_WIDTH = 140
COMPONENT_HEIGHT = 80

# GitHub token location. GITHUB_TOKEN in the environment wins, then the first file found.
GITHUB_TOKEN_FILES: list[Path] = [
    Path("~/.config/flowstate-github-token.txt").expanduser(),
    Path("~/.config/secret/flowstate-github-token.txt").expanduser(),
]

# Directory with data. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/flowstate").expanduser(),
    Path("~/.flowstate").expanduser(),
    Path("~/.config/flowstate").expanduser(),
]

STORE_FILENAME = "flowstate.db"
SETTINGS_FILENAME = "settings.json"


def resolve_data_directory() -> Path:
    """Return the data directory: FLOWSTATE_DATA_DIR, else the first existing, else the first."""
    override = os.environ.get("FLOWSTATE_DATA_DIR")
    if override:
        return Path(override).expanduser()
    for d in DATA_DIRECTORIES:
        if d.is_dir():
            return d
    return DATA_DIRECTORIES[0]
