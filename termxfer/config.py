"""Configuration management for termxfer."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from .host.params import Protocol
from .transfer.models import CancelPolicy, ConflictPolicy

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "TERMXFER_CONFIG_DIR"
EDITOR_ENVS = ("TERMXFER_EDITOR", "EDITOR")


def default_config_dir() -> Path:
    """Get the configuration directory, honouring the environment override."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "termxfer"


class Config:
    """User settings stored as JSON; writes are coalesced on a short timer."""

    SAVE_DELAY_SECONDS = 0.5

    DEFAULT_CONFIG = {
        "theme": "default",
        "default_editor": "",
        "default_protocol": "sftp",
        "show_hidden_files": False,
        "group_dirs_first": True,
        "enable_sync_browsing": False,
        "watch_debounce_ms": 500,
        "default_conflict_policy": ConflictPolicy.ASK_ONCE.value,
        "cancel_policy": CancelPolicy.DELETE_PARTIAL.value,
        "follow_symlinks": True,
        "ssh_config_path": "",
    }

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_file = self.config_dir / "config.json"
        self._config = self.DEFAULT_CONFIG.copy()
        self._save_timer: Optional[threading.Timer] = None
        self._save_lock = threading.Lock()
        self._dirty = False
        self._load()

    def _load(self) -> None:
        """Merge the file over the defaults; unreadable files are ignored."""
        if not self.config_file.exists():
            return
        try:
            with open(self.config_file, "r") as f:
                loaded = json.load(f)
        except (json.JSONDecodeError, IOError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self.config_file, exc)
            return
        if not isinstance(loaded, dict):
            logger.warning("Ignoring malformed config %s", self.config_file)
            return
        self._config.update(loaded)

    def _schedule_save(self) -> None:
        """Restart the save timer."""
        with self._save_lock:
            self._dirty = True
            if self._save_timer is not None:
                self._save_timer.cancel()
            self._save_timer = threading.Timer(self.SAVE_DELAY_SECONDS, self._do_save)
            self._save_timer.daemon = True
            self._save_timer.start()

    def _do_save(self) -> None:
        """Timer callback: write if still dirty."""
        with self._save_lock:
            if not self._dirty:
                return
            self._dirty = False
            self._save_timer = None
        self._write()

    def _write(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w") as f:
            json.dump(self._config, f, indent=2)
        logger.debug("Saved config to %s", self.config_file)

    def save(self) -> None:
        """Write the settings shortly, coalescing bursts of changes."""
        self._schedule_save()

    def save_now(self) -> None:
        """Write the settings now, cancelling any pending timer."""
        with self._save_lock:
            if self._save_timer is not None:
                self._save_timer.cancel()
                self._save_timer = None
            self._dirty = False
        self._write()

    def flush(self) -> None:
        """Write pending changes, if any, before exit."""
        with self._save_lock:
            pending = self._dirty
        if pending:
            self.save_now()

    @property
    def theme(self) -> str:
        """Get the UI theme."""
        return self._config.get("theme", "default")

    @theme.setter
    def theme(self, value: str) -> None:
        """Set the UI theme."""
        self._config["theme"] = value
        self.save()

    @property
    def default_editor(self) -> str:
        """Get the text editor, honouring TERMXFER_EDITOR and EDITOR."""
        for name in EDITOR_ENVS:
            value = os.environ.get(name)
            if value:
                return value
        return self._config.get("default_editor") or "vi"

    @default_editor.setter
    def default_editor(self, value: str) -> None:
        """Set the text editor."""
        self._config["default_editor"] = (value or "").strip()
        self.save()

    @property
    def default_protocol(self) -> Protocol:
        """Get the protocol used for addresses without a scheme."""
        try:
            return Protocol.parse(self._config.get("default_protocol", "sftp"))
        except ValueError:
            return Protocol.SFTP

    @default_protocol.setter
    def default_protocol(self, value: Protocol) -> None:
        """Set the default protocol."""
        self._config["default_protocol"] = Protocol.parse(getattr(value, "value", value)).value
        self.save()

    @property
    def show_hidden_files(self) -> bool:
        """Get whether hidden files are shown in new explorers."""
        return bool(self._config.get("show_hidden_files", False))

    @show_hidden_files.setter
    def show_hidden_files(self, value: bool) -> None:
        """Set whether hidden files are shown."""
        self._config["show_hidden_files"] = bool(value)
        self.save()

    @property
    def group_dirs_first(self) -> bool:
        """Get whether directories are listed before files."""
        return bool(self._config.get("group_dirs_first", True))

    @group_dirs_first.setter
    def group_dirs_first(self, value: bool) -> None:
        """Set whether directories are listed before files."""
        self._config["group_dirs_first"] = bool(value)
        self.save()

    @property
    def enable_sync_browsing(self) -> bool:
        """Get whether synchronized browsing starts enabled."""
        return bool(self._config.get("enable_sync_browsing", False))

    @enable_sync_browsing.setter
    def enable_sync_browsing(self, value: bool) -> None:
        """Set whether synchronized browsing starts enabled."""
        self._config["enable_sync_browsing"] = bool(value)
        self.save()

    @property
    def watch_debounce_ms(self) -> int:
        """Get the file watcher debounce window (milliseconds)."""
        try:
            value = int(self._config.get("watch_debounce_ms", 500))
            return max(50, min(60000, value))
        except (TypeError, ValueError):
            return 500

    @watch_debounce_ms.setter
    def watch_debounce_ms(self, value: int) -> None:
        """Set the file watcher debounce window (milliseconds)."""
        try:
            debounce = int(value)
        except (TypeError, ValueError):
            debounce = 500
        self._config["watch_debounce_ms"] = max(50, min(60000, debounce))
        self.save()

    @property
    def default_conflict_policy(self) -> ConflictPolicy:
        """Get the conflict policy applied to new transfers."""
        try:
            return ConflictPolicy(self._config.get("default_conflict_policy"))
        except ValueError:
            return ConflictPolicy.ASK_ONCE

    @default_conflict_policy.setter
    def default_conflict_policy(self, value: ConflictPolicy) -> None:
        """Set the conflict policy applied to new transfers."""
        self._config["default_conflict_policy"] = ConflictPolicy(value).value
        self.save()

    @property
    def cancel_policy(self) -> CancelPolicy:
        """Get what happens to a partially written file on cancel."""
        try:
            return CancelPolicy(self._config.get("cancel_policy"))
        except ValueError:
            return CancelPolicy.DELETE_PARTIAL

    @cancel_policy.setter
    def cancel_policy(self, value: CancelPolicy) -> None:
        """Set what happens to a partially written file on cancel."""
        self._config["cancel_policy"] = CancelPolicy(value).value
        self.save()

    @property
    def follow_symlinks(self) -> bool:
        """Get whether tree transfers follow symbolic links."""
        return bool(self._config.get("follow_symlinks", True))

    @follow_symlinks.setter
    def follow_symlinks(self, value: bool) -> None:
        """Set whether tree transfers follow symbolic links."""
        self._config["follow_symlinks"] = bool(value)
        self.save()

    @property
    def ssh_config_path(self) -> Optional[str]:
        """Get the OpenSSH config used for host aliases (None for the default)."""
        value = self._config.get("ssh_config_path") or ""
        return os.path.expanduser(value) if value else None

    @ssh_config_path.setter
    def ssh_config_path(self, value: Optional[str]) -> None:
        """Set the OpenSSH config path."""
        self._config["ssh_config_path"] = (value or "").strip()
        self.save()

    @property
    def bookmarks_file(self) -> Path:
        """Get the bookmark file path."""
        return self.config_dir / "bookmarks.json"

    @property
    def log_file(self) -> Path:
        """Get the log file path."""
        return self.config_dir / "termxfer.log"
