"""Runtime startup/shutdown orchestration primitives."""

from .composition_root import AuthCompositionRoot, LifecycleState

__all__ = ["AuthCompositionRoot", "LifecycleState"]
