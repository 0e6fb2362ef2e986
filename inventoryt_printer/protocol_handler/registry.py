"""Registry access for the machine-wide URL protocol keys.

``winreg`` is imported on first use so the package can be imported on any OS.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Dict, Optional, Protocol, Union

__all__ = ("Registry", "WinRegistry")

log = logging.getLogger(__name__)


class Registry(Protocol):
    def exists(self, key: str) -> bool:
        ...

    def read_default(self, key: str) -> Optional[str]:
        ...

    def write(self, key: str, content: Union[str, Dict[Optional[str], str]]) -> None:
        ...


class WinRegistry:
    """Keys are relative to ``HKEY_LOCAL_MACHINE``."""

    def __init__(self, root: str = "SOFTWARE\\Classes") -> None:
        self.root = root

    def _path(self, key: str) -> str:
        return f"{self.root}\\{key}" if self.root else key

    def exists(self, key: str) -> bool:
        """Return True if the key can be opened for reading."""
        import winreg

        with suppress(OSError):
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self._path(key), 0, winreg.KEY_READ):
                return True
        return False

    def read_default(self, key: str) -> Optional[str]:
        """Return the default value of the key, or None if it has none.

        Raises:
            OSError: If the key cannot be opened.
        """
        import winreg

        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self._path(key), 0, winreg.KEY_READ) as handle:
            try:
                value, _ = winreg.QueryValueEx(handle, "")
            except FileNotFoundError:
                return None
        return str(value)

    def write(self, key: str, content: Union[str, Dict[Optional[str], str]]) -> None:
        """Create the key and set its values.

        If ``content`` is a string it becomes the default value. In a dictionary,
        a ``None`` name also targets the default value.

        Raises:
            OSError: If the key cannot be created or a value cannot be set.
        """
        import winreg

        if isinstance(content, str):
            content = {None: content}
        with winreg.CreateKeyEx(
            winreg.HKEY_LOCAL_MACHINE, self._path(key), 0, winreg.KEY_WRITE
        ) as handle:
            for name, data in content.items():
                winreg.SetValueEx(handle, name or "", 0, winreg.REG_SZ, data)
        log.info("Wrote %r: %r", self._path(key), content)
