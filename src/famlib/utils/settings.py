"""Application settings management."""

from pathlib import Path

from PySide6.QtCore import QSettings

ORGANIZATION = "RK Tools"
APPLICATION = "FamilyLibrary"

DEFAULT_THUMBNAIL_SIZE = 384


class Settings:
    """Manage application settings using QSettings.

    Settings live in a per-user INI file unless an explicit file is given.
    """

    def __init__(self, path: Path | str | None = None):
        if path is not None:
            self._settings = QSettings(str(path), QSettings.Format.IniFormat)
        else:
            self._settings = QSettings(
                QSettings.Format.IniFormat,
                QSettings.Scope.UserScope,
                ORGANIZATION,
                APPLICATION,
            )

    @property
    def file_path(self) -> Path:
        """Location of the settings file."""
        return Path(self._settings.fileName())

    def sync(self):
        """Flush pending changes to disk."""
        self._settings.sync()

    # Library root
    def save_library_root(self, root: Path | str):
        """Save library root folder."""
        self._settings.setValue("library/root", str(root) if root else "")
        self.sync()

    def load_library_root(self) -> Path | None:
        """Load library root folder. None if not configured."""
        value = self._settings.value("library/root", "", type=str)
        if value and value.strip():
            return Path(value)
        return None

    # Thumbnail pixel size
    def save_thumbnail_size(self, size: int):
        """Save thumbnail pixel size."""
        self._settings.setValue("thumbnails/pixel_size", int(size))
        self.sync()

    def load_thumbnail_size(self) -> int:
        """Load thumbnail pixel size. Default 384."""
        try:
            size = self._settings.value(
                "thumbnails/pixel_size", DEFAULT_THUMBNAIL_SIZE, type=int
            )
        except (TypeError, ValueError):
            return DEFAULT_THUMBNAIL_SIZE
        return size if size and size > 0 else DEFAULT_THUMBNAIL_SIZE

    # Saved tag vocabulary
    def save_user_tags(self, tags: list[str]):
        """Save the user tag vocabulary."""
        self._settings.setValue("tags/user_tags", list(tags))
        self.sync()

    def load_user_tags(self) -> list[str]:
        """Load the user tag vocabulary."""
        value = self._settings.value("tags/user_tags", [])
        # INI format returns a plain string for one-element lists
        if isinstance(value, str):
            value = [value] if value else []
        if not isinstance(value, (list, tuple)):
            return []
        return [str(tag) for tag in value if str(tag).strip()]

    # Logging enabled
    def save_logging_enabled(self, enabled: bool):
        """Save logging enabled setting."""
        self._settings.setValue("debug/logging_enabled", enabled)
        self.sync()

    def load_logging_enabled(self) -> bool:
        """Load logging enabled setting. Default True."""
        return self._settings.value("debug/logging_enabled", True, type=bool)
