# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file),
see src/tasktree/config.py. This file exists to make the repo self-documenting.
"""

ENV_VARS = {
    # App / logging
    "TASKTREE_APP_NAME": "App display name (default: tasktree).",
    "TASKTREE_LOG_LEVEL": "Console logging level (default: INFO).",
    "TASKTREE_LOG_DIR": "Directory for tasktree.log (default: <data_dir>).",
    # Locations
    "TASKTREE_DATA_DIR": "Per-user data directory (default: $XDG_DATA_HOME/tasktree or ~/.local/share/tasktree).",
    "TASKTREE_GLOBAL_PATH": "Global task file (default: <data_dir>/tasks.json).",
    # Project mode
    "TASKTREE_PROJECT_ENABLED": "Detect project storage automatically (true/false, default: false).",
    "TASKTREE_USE_GIT_ROOT": "Use the git root as project root (true/false, default: true).",
    "TASKTREE_PATH_PATTERN": "Project file pattern with exactly one %s = project root; invalid values fall back to the default (%s/.tasktree/tasks.json).",
    "TASKTREE_MARKERS": "Comma/space separated project marker files.",
    "TASKTREE_CREATE_MARKER": "Create <root>/.tasktree when switching to a project (default: true).",
    "TASKTREE_AUTO_DETECT": "Follow working-directory changes (default: true).",
    # Safety / encoding
    "TASKTREE_AUTO_BACKUP": "Snapshot the file before every save (default: true).",
    "TASKTREE_BACKUP_COUNT": "Snapshots kept per file, >= 1 (default: 1).",
    "TASKTREE_COMPRESSION": "Compact the stored JSON (default: true).",
    "TASKTREE_ENCRYPTION": "Byte-shift obfuscation; NOT real encryption (default: false).",
    # Timers
    "TASKTREE_SAVE_DEBOUNCE": "Quiet period before a debounced save, seconds (default: 1.0).",
    "TASKTREE_REMINDER_INTERVAL": "Reminder check interval, seconds (default: 30).",
    "TASKTREE_AUTOSAVE_INTERVAL": "Autosave interval, seconds (default: 60).",
}
