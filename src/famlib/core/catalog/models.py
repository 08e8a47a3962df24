"""Catalog item model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

ALL_TAG = "All"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a persisted UTC timestamp. Naive values are taken as UTC."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def unique_sorted(names) -> list[str]:
    """Deduplicate case-insensitively (first spelling wins) and sort."""
    seen: dict[str, str] = {}
    for name in names:
        if not isinstance(name, str) or not name.strip():
            continue
        seen.setdefault(name.casefold(), name)
    return sorted(seen.values())


@dataclass
class CatalogItem:
    """One indexed asset file.

    Only the fields listed in ``PERSISTED_KEYS`` are written to the catalog
    file. Paths and workspace state are derived again every session.
    """

    display_name: str = ""
    category: str = ""
    relative_path: str = ""
    variant_names: list[str] = field(default_factory=list)
    format_version: str = ""
    last_modified_utc: Optional[datetime] = None
    user_tags: list[str] = field(default_factory=list)

    # Derived, never persisted
    full_path: str = ""
    thumbnail_path: str = ""
    variant_thumbnail_paths: list[str] = field(default_factory=list)
    is_loaded_in_workspace: bool = False
    _selected_variant_index: int = field(default=0, repr=False)

    PERSISTED_KEYS = (
        "DisplayName",
        "Category",
        "RelativePath",
        "TypeNames",
        "SavedInVersion",
        "LastWriteTimeUtc",
        "UserCategories",
    )

    def __post_init__(self):
        self.variant_names = unique_sorted(self.variant_names)

    @classmethod
    def from_record(cls, record: dict) -> "CatalogItem":
        """Create an item from a persisted record, ignoring unknown keys."""
        item = cls(
            display_name=_as_str(record.get("DisplayName")),
            category=_as_str(record.get("Category")),
            relative_path=_as_str(record.get("RelativePath")).replace("\\", "/"),
            variant_names=unique_sorted(_as_list(record.get("TypeNames"))),
            format_version=_as_str(record.get("SavedInVersion")),
            last_modified_utc=parse_timestamp(record.get("LastWriteTimeUtc")),
        )
        for tag in _as_list(record.get("UserCategories")):
            item.add_tag(tag)
        return item

    def to_record(self) -> dict:
        """Persisted fields only, in a stable key order."""
        return {
            "DisplayName": self.display_name,
            "Category": self.category,
            "RelativePath": self.relative_path.replace("\\", "/"),
            "TypeNames": list(self.variant_names),
            "SavedInVersion": self.format_version,
            "LastWriteTimeUtc": format_timestamp(self.last_modified_utc),
            "UserCategories": list(self.user_tags),
        }

    # === User tags ===

    def has_tag(self, tag: str) -> bool:
        key = tag.strip().casefold()
        return any(t.casefold() == key for t in self.user_tags)

    def add_tag(self, tag: str) -> bool:
        """Add a tag unless present (case-insensitive). Returns True if added."""
        if not isinstance(tag, str):
            return False
        tag = tag.strip()
        if not tag or tag.casefold() == ALL_TAG.casefold() or self.has_tag(tag):
            return False
        self.user_tags.append(tag)
        return True

    def remove_tag(self, tag: str) -> bool:
        key = tag.strip().casefold()
        for existing in self.user_tags:
            if existing.casefold() == key:
                self.user_tags.remove(existing)
                return True
        return False

    def toggle_tag(self, tag: str) -> bool:
        """Remove the tag if present, add it otherwise. Returns the new state."""
        if self.remove_tag(tag):
            return False
        return self.add_tag(tag)

    # === Variant thumbnail gallery ===

    @property
    def selected_variant_index(self) -> int:
        return self._selected_variant_index

    @selected_variant_index.setter
    def selected_variant_index(self, value: int) -> None:
        upper = max(len(self.variant_thumbnail_paths) - 1, 0)
        self._selected_variant_index = min(max(value, 0), upper)

    @property
    def current_thumbnail_path(self) -> str:
        if self.variant_thumbnail_paths:
            return self.variant_thumbnail_paths[self.selected_variant_index]
        return self.thumbnail_path

    @property
    def has_multiple_thumbnails(self) -> bool:
        return len(self.variant_thumbnail_paths) > 1

    @property
    def can_prev_thumbnail(self) -> bool:
        return self.has_multiple_thumbnails and self.selected_variant_index > 0

    @property
    def can_next_thumbnail(self) -> bool:
        return (
            self.has_multiple_thumbnails
            and self.selected_variant_index < len(self.variant_thumbnail_paths) - 1
        )

    def prev_thumbnail(self) -> None:
        if self.can_prev_thumbnail:
            self.selected_variant_index -= 1

    def next_thumbnail(self) -> None:
        if self.can_next_thumbnail:
            self.selected_variant_index += 1

    @property
    def last_modified_local(self) -> str:
        if self.last_modified_utc is None:
            return ""
        return self.last_modified_utc.astimezone().strftime("%Y-%m-%d %H:%M")


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []
