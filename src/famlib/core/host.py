"""Interfaces for the host application the library talks to.

The library never touches a CAD application directly. Everything it needs from
the host goes through the abstract classes below: opening asset documents,
rendering views, importing into a workspace and listening for idle signals.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping


class LibraryError(Exception):
    """Base class for library errors."""


class HostError(LibraryError):
    """Raised by host implementations when a document cannot be used."""


# Notifier(title, message) - surfaces a message to the user
Notifier = Callable[[str, str], None]

# Render capability: render(view, pixel_size) -> raster file path
RenderFunc = Callable[[Any, int], Path]


def null_notifier(title: str, message: str) -> None:
    """Notifier that drops every message."""


class ScopedMutation(ABC):
    """A group of document changes that can be committed or rolled back.

    Used as a context manager, an uncommitted scope is rolled back on exit.
    """

    def __init__(self, name: str):
        self.name = name
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def commit(self) -> None:
        if self._closed:
            return
        self._do_commit()
        self._closed = True

    def rollback(self) -> None:
        if self._closed:
            return
        self._do_rollback()
        self._closed = True

    @abstractmethod
    def _do_commit(self) -> None:
        pass

    @abstractmethod
    def _do_rollback(self) -> None:
        pass

    def __enter__(self) -> "ScopedMutation":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.rollback()


class AssetDocument(ABC):
    """An opened asset file."""

    @property
    @abstractmethod
    def is_asset(self) -> bool:
        """Whether the opened file is an asset document at all."""

    @property
    @abstractmethod
    def category(self) -> str:
        pass

    @abstractmethod
    def variant_names(self) -> list[str]:
        """Names of the internal variants, in document order."""

    @abstractmethod
    def begin_scope(self, name: str) -> ScopedMutation:
        """Start a group of changes on this document."""

    @abstractmethod
    def get_or_create_preview_view(self, name: str) -> Any:
        """Return the named preview view, creating it if missing."""

    @abstractmethod
    def hide_category(self, view: Any, category: str) -> None:
        pass

    @abstractmethod
    def element_ids(self, element_class: str) -> list[Any]:
        pass

    @abstractmethod
    def hide_elements(self, view: Any, element_ids: list[Any]) -> None:
        pass

    @abstractmethod
    def activate_variant(self, name: str) -> None:
        pass

    @abstractmethod
    def regenerate(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        """Close without saving."""


class AssetHost(ABC):
    """Opens asset files and reads their basic file information."""

    #: File extension (with dot) of asset files handled by this host
    asset_extension: str = ".rfa"

    @abstractmethod
    def open_document(self, path: Path) -> AssetDocument:
        pass

    @abstractmethod
    def read_file_info(self, path: Path) -> Mapping[str, str]:
        """Basic file information without opening the document.

        Keys are lower-case field names, e.g. ``saved_in_version`` or
        ``build``; the special key ``summary`` holds a free-form description.
        """


@dataclass
class LoadedAsset:
    """An asset that lives in the workspace after a load."""

    name: str
    source_path: Path
    variants: list[str] = field(default_factory=list)


@dataclass
class PlacementTarget:
    """A loaded asset variant waiting to be placed."""

    asset: LoadedAsset
    variant: str


class WorkspaceTransaction(ScopedMutation):
    """Transaction over the workspace."""


class Workspace(ABC):
    """The target an asset gets imported into."""

    @abstractmethod
    def asset_names(self) -> Iterable[str]:
        """Names of assets currently present."""

    @abstractmethod
    def begin_transaction(self, name: str) -> WorkspaceTransaction:
        pass

    @abstractmethod
    def load_asset(self, path: Path, overwrite: bool) -> LoadedAsset | None:
        """Import an asset file. Returns None when the host refuses it."""

    @abstractmethod
    def first_usable_variant(self, asset: LoadedAsset) -> str | None:
        pass

    @abstractmethod
    def activate_variant(self, asset: LoadedAsset, variant: str) -> None:
        pass

    @abstractmethod
    def request_placement(self, asset: LoadedAsset, variant: str) -> None:
        """Hand control to the host's native placement flow."""


class IdleSource(ABC):
    """Source of the host's idle signal."""

    @abstractmethod
    def add_idle_listener(self, callback: Callable[[], None]) -> None:
        pass

    @abstractmethod
    def remove_idle_listener(self, callback: Callable[[], None]) -> None:
        """Remove a listener. Removing an unknown listener is a no-op."""


class ConflictChoice(Enum):
    """Answers to a name collision during a batch load."""

    OVERWRITE = "overwrite"
    SKIP = "skip"
    OVERWRITE_ALL = "overwrite_all"
    SKIP_ALL = "skip_all"
    CANCEL = "cancel"


# ConflictPrompt(asset_name, path) -> choice
ConflictPrompt = Callable[[str, Path], ConflictChoice]
