"""
Device-local host.

Actions performed on the operator's own machine: opening dialer / compose /
chat links, writing the clipboard, raising a local notification and writing
files. None of these depend on an external service.

`LocalDeviceHost` is the real implementation; tests inject their own host.
"""

import shutil
import subprocess
import sys
import webbrowser
from pathlib import Path
from typing import Optional, Protocol

import structlog

from nivaran.common.exceptions import DeviceActionError

logger = structlog.get_logger(__name__)


class DeviceHost(Protocol):
    """Protocol for the machine that performs device-local actions."""

    def open_url(self, url: str) -> bool:
        """Hand `url` (tel:, mailto:, https://wa.me/...) to the OS. True if accepted."""
        ...

    def copy_to_clipboard(self, text: str) -> None:
        """Write the system clipboard. Raises DeviceActionError when unavailable."""
        ...

    def write_file(self, filename: str, content: str) -> Path:
        """Write an export file and return its path."""
        ...

    def notify(self, title: str, body: str) -> None:
        """Raise an operator-visible local notification."""
        ...


# Clipboard commands per platform, tried in order
_CLIPBOARD_COMMANDS: dict[str, list[list[str]]] = {
    "darwin": [["pbcopy"]],
    "win32": [["clip"]],
    "linux": [
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ],
}


class LocalDeviceHost:
    """
    Device host backed by the local OS.

    Links go through `webbrowser`, the clipboard through the platform's
    clipboard command, files into `export_dir`.
    """

    def __init__(
        self,
        export_dir: str | Path = "./emergency_alerts",
        open_links: bool = True,
    ):
        self._export_dir = Path(export_dir)
        self._open_links = open_links

    @property
    def export_dir(self) -> Path:
        return self._export_dir

    def open_url(self, url: str) -> bool:
        if not self._open_links:
            logger.info("device_link_not_opened", scheme=url.split(":", 1)[0], reason="disabled")
            return False
        try:
            opened = webbrowser.open(url, new=2)
        except webbrowser.Error as e:
            raise DeviceActionError("open_url", str(e)) from e
        logger.info("device_link_opened", scheme=url.split(":", 1)[0], opened=opened)
        return opened

    def copy_to_clipboard(self, text: str) -> None:
        command = self._clipboard_command()
        if command is None:
            raise DeviceActionError("clipboard", "no clipboard command available")
        try:
            subprocess.run(
                command,
                input=text.encode("utf-8"),
                check=True,
                timeout=5,
                capture_output=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise DeviceActionError("clipboard", f"{command[0]} failed: {e}") from e
        logger.info("clipboard_written", tool=command[0], chars=len(text))

    def write_file(self, filename: str, content: str) -> Path:
        try:
            self._export_dir.mkdir(parents=True, exist_ok=True)
            path = self._export_dir / filename
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise DeviceActionError("write_file", str(e)) from e
        logger.info("device_file_written", path=str(path), bytes=len(content.encode("utf-8")))
        return path

    def notify(self, title: str, body: str) -> None:
        # Terminal bell + banner on stderr; stays visible without a desktop session
        banner = "=" * 60
        sys.stderr.write(f"\a\n{banner}\n{title}\n{banner}\n{body}\n{banner}\n")
        sys.stderr.flush()
        logger.critical("local_notification", title=title)

    @staticmethod
    def _clipboard_command() -> Optional[list[str]]:
        platform = "linux" if sys.platform.startswith("linux") else sys.platform
        for command in _CLIPBOARD_COMMANDS.get(platform, []):
            if shutil.which(command[0]):
                return command
        return None
