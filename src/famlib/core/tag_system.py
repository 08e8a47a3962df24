"""User tag vocabulary and catalog filtering."""

from dataclasses import dataclass
from typing import Iterable

from famlib.core.catalog.models import ALL_TAG, CatalogItem, unique_sorted

MODE_2D = "2D"
MODE_3D = "3D"

# Always present in the vocabulary
REQUIRED_TAGS = ("2D", "3D", "EL", "EN", "EA")

# Never offered in the category selector
BANNED_TAGS = frozenset(t.casefold() for t in ("EL", "EN", "EA", "2D", "3D"))


@dataclass(frozen=True)
class ToggleGroup:
    """A named, fixed set of tags that becomes the allowed set when active."""

    name: str
    tags: frozenset[str]

    @classmethod
    def of(cls, name: str, tags: Iterable[str]) -> "ToggleGroup":
        return cls(name, frozenset(t.casefold() for t in tags))

    def __contains__(self, tag: str) -> bool:
        return tag.casefold() in self.tags


DEFAULT_TOGGLE_GROUPS = (
    ToggleGroup.of("EL", ("EL", "Andurid", "Kilbid", "Lülitid", "Pistikud", "Valgusti")),
    ToggleGroup.of("EN", ("EN", "ATS", "Kilbid", "LPS", "SHS", "Side", "VVS")),
    ToggleGroup.of("EA", ("EA", "Andurid", "Kilbid")),
)


class TagVocabulary:
    """Global list of user tags, case-insensitively unique and sorted."""

    def __init__(self, tags: Iterable[str] = ()):
        self._tags = _clean(tags)

    @classmethod
    def build(
        cls,
        saved: Iterable[str],
        items: Iterable[CatalogItem],
        required: Iterable[str] = REQUIRED_TAGS,
    ) -> "TagVocabulary":
        """Saved tags, tags found on items and the required set."""
        observed = [tag for item in items for tag in item.user_tags]
        return cls([*saved, *observed, *required])

    @property
    def tags(self) -> list[str]:
        return list(self._tags)

    def __iter__(self):
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def contains(self, tag: str) -> bool:
        key = tag.strip().casefold()
        return any(t.casefold() == key for t in self._tags)

    __contains__ = contains

    def add(self, tag: str) -> bool:
        """Add a tag. Returns False for blank, reserved or duplicate tags."""
        tag = (tag or "").strip()
        if not tag or tag.casefold() == ALL_TAG.casefold() or self.contains(tag):
            return False
        self._tags = _clean([*self._tags, tag])
        return True

    ensure = add

    def remove(self, tag: str) -> bool:
        key = (tag or "").strip().casefold()
        kept = [t for t in self._tags if t.casefold() != key]
        removed = len(kept) != len(self._tags)
        self._tags = kept
        return removed


def _clean(tags: Iterable[str]) -> list[str]:
    return unique_sorted(
        t.strip() for t in tags if isinstance(t, str) and t.strip().casefold() != ALL_TAG.casefold()
    )


def _contains_text(haystack: str, needle: str) -> bool:
    return bool(haystack) and needle in haystack.casefold()


class CatalogFilter:
    """Computes the visible part of the catalog.

    Stages run in a fixed order: display mode, toggle groups, the single
    category selector and finally free text.
    """

    def __init__(
        self,
        vocabulary: TagVocabulary | None = None,
        toggle_groups: Iterable[ToggleGroup] = DEFAULT_TOGGLE_GROUPS,
        banned_tags: Iterable[str] = BANNED_TAGS,
    ):
        self.vocabulary = vocabulary or TagVocabulary(REQUIRED_TAGS)
        self._groups = {group.name.casefold(): group for group in toggle_groups}
        self._banned = frozenset(t.casefold() for t in banned_tags)
        self._active: set[str] = set()
        self._mode = MODE_3D
        self._category = ALL_TAG
        self.search_text = ""

    # === State ===

    @property
    def toggle_groups(self) -> list[ToggleGroup]:
        return list(self._groups.values())

    @property
    def mode(self) -> str:
        return self._mode

    def set_mode(self, mode: str) -> None:
        """Switch between 2D and 3D. Resets the category selector."""
        mode = mode.strip().upper()
        if mode not in (MODE_2D, MODE_3D):
            raise ValueError(f"Unknown display mode: {mode}")
        if mode != self._mode:
            self._mode = mode
            self._category = ALL_TAG

    def is_toggle_active(self, name: str) -> bool:
        return name.casefold() in self._active

    @property
    def active_toggles(self) -> list[str]:
        return [g.name for key, g in self._groups.items() if key in self._active]

    def set_toggle(self, name: str, active: bool) -> None:
        """Turn a toggle group on or off. Resets the category selector."""
        key = name.casefold()
        if key not in self._groups:
            raise KeyError(f"Unknown toggle group: {name}")
        if active == (key in self._active):
            return
        if active:
            self._active.add(key)
        else:
            self._active.discard(key)
        self._category = ALL_TAG
        self.visible_categories()

    @property
    def selected_category(self) -> str:
        return self._category

    @selected_category.setter
    def selected_category(self, value: str | None) -> None:
        value = (value or "").strip()
        self._category = value if value else ALL_TAG

    # === Vocabulary subset ===

    def _active_tags(self) -> set[str]:
        tags: set[str] = set()
        for key in self._active:
            tags |= self._groups[key].tags
        return tags

    def visible_categories(self) -> list[str]:
        """Entries for the category selector, "All" first.

        Resets the selection to "All" when it is no longer offered.
        """
        allowed = self._active_tags() if self._active else None
        visible = [ALL_TAG]
        for tag in self.vocabulary:
            key = tag.casefold()
            if key in self._banned:
                continue
            if allowed is not None and key not in allowed:
                continue
            visible.append(tag)

        if not any(v.casefold() == self._category.casefold() for v in visible):
            self._category = ALL_TAG
        return visible

    # === Filtering ===

    def passes_mode(self, item: CatalogItem) -> bool:
        opposite = MODE_3D if self._mode == MODE_2D else MODE_2D
        return item.has_tag(self._mode) or not item.has_tag(opposite)

    def passes_toggles(self, item: CatalogItem) -> bool:
        if not self._active:
            return True
        allowed = self._active_tags()
        return any(tag.casefold() in allowed for tag in item.user_tags)

    def passes_category(self, item: CatalogItem) -> bool:
        if self._category.casefold() == ALL_TAG.casefold():
            return True
        return item.has_tag(self._category)

    def passes_text(self, item: CatalogItem) -> bool:
        needle = (self.search_text or "").strip().casefold()
        if not needle:
            return True
        return (
            _contains_text(item.display_name, needle)
            or _contains_text(item.category, needle)
            or _contains_text(item.relative_path, needle)
            or any(_contains_text(tag, needle) for tag in item.user_tags)
            or any(_contains_text(name, needle) for name in item.variant_names)
        )

    def apply(self, items: Iterable[CatalogItem]) -> list[CatalogItem]:
        """Visible items, in catalog order."""
        result = [item for item in items if self.passes_mode(item)]
        result = [item for item in result if self.passes_toggles(item)]
        result = [item for item in result if self.passes_category(item)]
        return [item for item in result if self.passes_text(item)]
