"""
Room Session
============
Owns the per-photo model state that feeds the occlusion chain.

Loading a room starts depth and segmentation inference concurrently. Each
tier settles as ready or unavailable; results that arrive for a photo that
has since been replaced are dropped. A render pass reads an immutable
``snapshot()`` so it never sees a half-updated state.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..detectors.depth_detector import DepthAnythingEstimator
from ..detectors.segformer_detector import SegFormerSegmenter

logger = logging.getLogger(__name__)

PENDING = "pending"
READY = "ready"
UNAVAILABLE = "unavailable"
DISABLED = "disabled"


@dataclass(frozen=True)
class OcclusionInputs:
    """Model outputs for one room photo, as seen by one render pass."""

    generation: int
    room: Optional[np.ndarray]
    depth: Optional[object]
    segmentation: Optional[object]
    depth_status: str
    segmentation_status: str

    @property
    def settled(self) -> bool:
        return PENDING not in (self.depth_status, self.segmentation_status)


class RoomSession:
    """
    Model state for the room photo currently being edited

    Args:
        depth_service: Object with ``init()``/``predict(image)`` returning a
                       ``DepthResult``, or None to disable the tier
        segmentation_service: Same contract, returning a ``SegmentationResult``
    """

    def __init__(self, depth_service=None, segmentation_service=None):
        self.depth_service = depth_service
        self.segmentation_service = segmentation_service
        self._generation = 0
        self._room = None
        self._results = {"depth": None, "segmentation": None}
        self._status = {"depth": DISABLED, "segmentation": DISABLED}

    @property
    def generation(self) -> int:
        return self._generation

    async def init_services(self) -> None:
        """Load every service once; a service that fails to load stays usable as 'unavailable'."""
        for name, service in (("depth", self.depth_service),
                              ("segmentation", self.segmentation_service)):
            if service is None:
                continue
            try:
                await asyncio.to_thread(service.init)
            except Exception as e:
                logger.warning(f"⚠️ {name} service failed to initialize: {e}")

    async def load_room(self, room: np.ndarray) -> OcclusionInputs:
        """
        Switch to a new room photo and run both model tiers for it.

        Results still in flight for an earlier photo are discarded when
        they arrive.
        """
        self._generation += 1
        generation = self._generation
        self._room = room
        self._results = {"depth": None, "segmentation": None}
        self._status = {
            "depth": PENDING if self.depth_service is not None else DISABLED,
            "segmentation": PENDING if self.segmentation_service is not None else DISABLED,
        }
        logger.info(f"🏠 Room loaded (generation {generation}), running models...")

        await asyncio.gather(
            self._run_tier("depth", self.depth_service, room, generation),
            self._run_tier("segmentation", self.segmentation_service, room, generation),
        )
        return self.snapshot()

    async def _run_tier(self, name: str, service, room: np.ndarray, generation: int) -> None:
        if service is None:
            return
        try:
            result = await asyncio.to_thread(service.predict, room)
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"   stale {name} failure ignored (generation {generation})")
                return
            logger.warning(f"⚠️ {name} unavailable: {e}")
            self._status[name] = UNAVAILABLE
            return

        if generation != self._generation:
            logger.warning(f"⚠️ Dropping stale {name} result for generation {generation}")
            return
        if result is None:
            self._status[name] = UNAVAILABLE
            logger.warning(f"⚠️ {name} returned nothing, tier unavailable")
            return
        self._results[name] = result
        self._status[name] = READY
        logger.info(f"   ✓ {name} ready")

    def snapshot(self) -> OcclusionInputs:
        """
        Consistent view of the current state.

        Model results are only exposed once both tiers have settled, so the
        priority chain always runs over final state.
        """
        depth_status = self._status["depth"]
        segmentation_status = self._status["segmentation"]
        settled = PENDING not in (depth_status, segmentation_status)
        return OcclusionInputs(
            generation=self._generation,
            room=self._room,
            depth=self._results["depth"] if settled else None,
            segmentation=self._results["segmentation"] if settled else None,
            depth_status=depth_status,
            segmentation_status=segmentation_status,
        )


def default_services(model_config):
    """Depth and segmentation services built from ``ModelConfig``; weights load on first use."""
    depth = DepthAnythingEstimator(
        model_name=model_config.depth_model,
        input_size=model_config.depth_input_size,
        device=model_config.device,
    )
    segmentation = SegFormerSegmenter(
        model_name=model_config.segmentation_model,
        device=model_config.device,
    )
    return depth, segmentation
