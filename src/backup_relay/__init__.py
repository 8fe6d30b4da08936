"""
Backup Relay - scheduled and on-demand database backups delivered to Telegram.

The package exposes the backup pipeline (``backup-relay-run``) and the
Telegram webhook that triggers it (``backup-relay-webhook``).
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("backup-relay")
except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
