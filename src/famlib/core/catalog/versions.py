"""Best-effort detection of the version an asset file was saved in."""

from dataclasses import dataclass
from typing import Callable, Mapping, Optional

MIN_YEAR = 2010
MAX_YEAR = 2100


@dataclass(frozen=True)
class DetectedVersion:
    """A version year and the file-info field it came from."""

    year: str
    source: str


VersionStrategy = Callable[[Mapping[str, str]], Optional[DetectedVersion]]


def extract_year(text: str) -> str:
    """First ``20dd`` in ``text`` within the plausible range, else ""."""
    if not text:
        return ""
    for i in range(len(text) - 3):
        chunk = text[i : i + 4]
        if chunk.startswith("20") and chunk.isdigit():
            if MIN_YEAR <= int(chunk) <= MAX_YEAR:
                return chunk
    return ""


def field_strategy(field_name: str) -> VersionStrategy:
    """Strategy reading one named file-info field."""

    def strategy(info: Mapping[str, str]) -> Optional[DetectedVersion]:
        value = info.get(field_name)
        if not isinstance(value, str) or not value.strip():
            return None
        year = extract_year(value)
        return DetectedVersion(year, field_name) if year else None

    strategy.__name__ = f"field_{field_name}"
    return strategy


def summary_strategy(info: Mapping[str, str]) -> Optional[DetectedVersion]:
    """Last resort: scan the free-form summary."""
    year = extract_year(str(info.get("summary") or ""))
    return DetectedVersion(year, "summary") if year else None


DEFAULT_STRATEGIES: tuple[VersionStrategy, ...] = (
    field_strategy("saved_in_version"),
    field_strategy("revit_version"),
    field_strategy("format"),
    field_strategy("build"),
    summary_strategy,
)


def detect_version(
    info: Mapping[str, str],
    strategies: tuple[VersionStrategy, ...] = DEFAULT_STRATEGIES,
) -> Optional[DetectedVersion]:
    """Run the strategies in order and return the first hit."""
    for strategy in strategies:
        result = strategy(info)
        if result is not None:
            return result
    return None
