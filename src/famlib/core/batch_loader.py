"""Loading selected assets into a workspace."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from famlib.core.host import (
    ConflictChoice,
    ConflictPrompt,
    LoadedAsset,
    Notifier,
    PlacementTarget,
    Workspace,
    null_notifier,
)
from famlib.utils.logger import get_logger

if TYPE_CHECKING:
    from famlib.core.placement import DeferredPlacement

_logger = get_logger()


class ConflictPolicy(Enum):
    """Sticky answer for the rest of a batch."""

    ASK = "ask"
    OVERWRITE = "overwrite"
    SKIP = "skip"


@dataclass
class LoadReport:
    """Counts for one batch."""

    loaded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False
    placement_started: bool = False

    def summary(self) -> str:
        return f"Loaded: {self.loaded}\nSkipped: {self.skipped}\nFailed: {self.failed}"


class BatchLoader:
    """Imports asset files into a workspace in one transaction.

    Name collisions are resolved through ``prompt``. Overwrite-all and
    skip-all answers stick for the rest of the batch; cancel rolls back the
    whole batch.
    """

    def __init__(
        self,
        workspace: Workspace,
        prompt: ConflictPrompt,
        placement: "DeferredPlacement | None" = None,
        notify: Notifier | None = None,
        policy: ConflictPolicy = ConflictPolicy.ASK,
    ):
        self._workspace = workspace
        self._prompt = prompt
        self._placement = placement
        self._notify = notify or null_notifier
        self._initial_policy = policy

    def load_selected(
        self,
        paths: Iterable[Path | str] | None,
        place_after_loading: bool = False,
    ) -> LoadReport:
        """Load ``paths`` in order and report the counts."""
        report = LoadReport()
        paths = [Path(p) if p else None for p in (paths or [])]
        if not paths:
            return report

        existing = {name.casefold() for name in self._workspace.asset_names() if name}
        policy = self._initial_policy
        first_loaded: LoadedAsset | None = None

        transaction = self._workspace.begin_transaction("Load asset files")
        try:
            for path in paths:
                if path is None or not path.is_file():
                    report.failed += 1
                    continue

                name = path.stem
                exists = bool(name) and name.casefold() in existing

                if exists:
                    if policy == ConflictPolicy.ASK:
                        choice = self._prompt(name, path)
                        if choice == ConflictChoice.CANCEL:
                            transaction.rollback()
                            _logger.info("Batch load cancelled, all changes rolled back")
                            return LoadReport(cancelled=True)
                        if choice == ConflictChoice.OVERWRITE_ALL:
                            policy = ConflictPolicy.OVERWRITE
                        elif choice == ConflictChoice.SKIP_ALL:
                            policy = ConflictPolicy.SKIP
                        overwrite = choice in (ConflictChoice.OVERWRITE, ConflictChoice.OVERWRITE_ALL)
                    else:
                        overwrite = policy == ConflictPolicy.OVERWRITE

                    if not overwrite:
                        report.skipped += 1
                        continue

                try:
                    loaded = self._workspace.load_asset(path, overwrite=exists)
                except Exception as e:
                    _logger.warning(f"Loading {path} failed: {e}")
                    loaded = None

                if loaded is None:
                    report.failed += 1
                    continue

                report.loaded += 1
                existing.add(name.casefold())
                if first_loaded is None:
                    first_loaded = loaded

            transaction.commit()
        except BaseException:
            transaction.rollback()
            raise

        _logger.info(
            f"Batch load: {report.loaded} loaded, {report.skipped} skipped, {report.failed} failed"
        )

        if place_after_loading and len(paths) == 1 and first_loaded is not None:
            self._start_placement(first_loaded, report)
        else:
            self._notify("Family Library", report.summary())
        return report

    def _start_placement(self, asset: LoadedAsset, report: LoadReport) -> None:
        try:
            variant = self._workspace.first_usable_variant(asset)
            if variant is None:
                self._notify("Family Library", "The asset was loaded, but no placeable variant was found.")
                return

            transaction = self._workspace.begin_transaction("Activate variant")
            with transaction:
                self._workspace.activate_variant(asset, variant)
                transaction.commit()

            if self._placement is not None:
                self._placement.start(PlacementTarget(asset, variant))
                report.placement_started = True
        except Exception as e:
            _logger.warning(f"Placement of {asset.name} failed: {e}")
            self._notify("Family Library", f"The asset was loaded, but placement failed:\n{e}")
