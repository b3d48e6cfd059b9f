"""
Registry of live controllers, keyed by controller id.

Callers create a registry and pass it around explicitly; there is no
module-level instance.
"""

from typing import Dict, Iterator, List, Type

from ....utils.logging import get_logger
from .dispatcher import (
    AdaptiveTargetEncoderController,
    CompositeEncoderController,
    EncoderController,
    ProcessEncoderController,
)

logger = get_logger("registry")

CONTROLLER_TYPES: Dict[str, Type[EncoderController]] = {
    "transcode": ProcessEncoderController,
    "score": CompositeEncoderController,
    "target": AdaptiveTargetEncoderController,
}


class ControllerRegistry:
    def __init__(self):
        self._controllers: Dict[str, EncoderController] = {}

    def create(self, kind: str, **kwargs) -> EncoderController:
        """Build a controller of ``kind`` (see ``CONTROLLER_TYPES``) and register it."""
        try:
            controller_class = CONTROLLER_TYPES[kind]
        except KeyError:
            raise ValueError(f"Unknown controller kind '{kind}'. Expected one of: {', '.join(CONTROLLER_TYPES)}")
        controller = controller_class(**kwargs)
        self.register(controller)
        return controller

    def register(self, controller: EncoderController) -> str:
        self._controllers[controller.controller_id] = controller
        logger.debug(f"registered {type(controller).__name__} {controller.controller_id}")
        return controller.controller_id

    def get(self, controller_id: str) -> EncoderController:
        """Raises KeyError for an unknown id."""
        return self._controllers[controller_id]

    def remove(self, controller_id: str) -> EncoderController:
        """Forget a controller. Its running encoders are not stopped."""
        controller = self._controllers.pop(controller_id)
        logger.debug(f"removed controller {controller_id}")
        return controller

    def controllers(self) -> List[EncoderController]:
        return list(self._controllers.values())

    def __contains__(self, controller_id: str) -> bool:
        return controller_id in self._controllers

    def __iter__(self) -> Iterator[EncoderController]:
        return iter(self.controllers())

    def __len__(self) -> int:
        return len(self._controllers)
