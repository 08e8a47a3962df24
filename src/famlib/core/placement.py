"""Deferred placement of a freshly loaded asset variant."""

from enum import Enum
from typing import Callable

from PySide6.QtCore import QObject, Signal

from famlib.core.host import IdleSource, PlacementTarget
from famlib.utils.logger import get_logger

_logger = get_logger()


class PlacementState(Enum):
    """Placement coordinator state."""

    IDLE = "idle"
    ARMED = "armed"


class DeferredPlacement(QObject):
    """One-shot handoff to the host's placement flow on the next idle signal.

    Placement cannot start while the load transaction is still on the stack,
    so the coordinator waits for the host to go idle first.

    Signals:
        armed: Emits the target when a placement is scheduled
        placement_requested: Emits the target after a successful handoff
    """

    armed = Signal(object)
    placement_requested = Signal(object)

    def __init__(
        self,
        idle_source: IdleSource,
        handoff: Callable[[PlacementTarget], None],
        hide_ui: Callable[[], None] | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._idle_source = idle_source
        self._handoff = handoff
        self._hide_ui = hide_ui
        self._state = PlacementState.IDLE
        self._target: PlacementTarget | None = None
        self._listening = False

    @property
    def state(self) -> PlacementState:
        return self._state

    @property
    def target(self) -> PlacementTarget | None:
        return self._target

    def start(self, target: PlacementTarget | None) -> bool:
        """Schedule ``target`` for placement. Ignored while already armed."""
        if target is None or self._state == PlacementState.ARMED:
            return False

        self._target = target
        self._state = PlacementState.ARMED
        self._register()
        self.armed.emit(target)
        return True

    def _register(self) -> None:
        if not self._listening:
            self._idle_source.add_idle_listener(self._on_idle)
            self._listening = True

    def _unregister(self) -> None:
        if self._listening:
            self._listening = False
            self._idle_source.remove_idle_listener(self._on_idle)

    def _on_idle(self) -> None:
        target = self._target
        self._unregister()
        self._state = PlacementState.IDLE
        self._target = None
        if target is None:
            return

        # The handoff may start a new placement, which arms the machine again
        try:
            if self._hide_ui is not None:
                self._hide_ui()

            self._handoff(target)
            self.placement_requested.emit(target)
        except Exception as e:
            _logger.warning(f"Placement handoff failed: {e}")
