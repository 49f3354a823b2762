import asyncio
import dataclasses
import threading

import numpy as np
import pytest

from tile_overlay.detectors.depth_detector import DepthResult
from tile_overlay.utils.session import (
    DISABLED,
    PENDING,
    READY,
    UNAVAILABLE,
    RoomSession,
)

from tests.conftest import FailingService, FakeDepthService, FakeSegmentationService, solid


class GatedDepthService:
    """First prediction blocks until released; later ones return at once."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def init(self):
        return self

    def predict(self, image):
        self.calls += 1
        call = self.calls
        if call == 1:
            self.started.set()
            self.release.wait(timeout=10)
        depth = np.full((4, 4), float(call), dtype=np.float32)
        return DepthResult(depth=depth, width=4, height=4)


def test_both_tiers_ready():
    depth = FakeDepthService()
    session = RoomSession(depth, FakeSegmentationService())

    snapshot = asyncio.run(session.load_room(solid(64, 48, (50, 50, 50))))

    assert snapshot.generation == 1
    assert snapshot.depth_status == READY
    assert snapshot.segmentation_status == READY
    assert snapshot.settled
    assert snapshot.depth.depth.shape == (48, 64)
    assert snapshot.segmentation.class_ids["wall"] == 0
    assert depth.predict_calls == 1


def test_failing_tier_is_unavailable():
    session = RoomSession(FailingService(), FakeSegmentationService())

    snapshot = asyncio.run(session.load_room(solid(8, 8, (0, 0, 0))))

    assert snapshot.depth_status == UNAVAILABLE
    assert snapshot.depth is None
    assert snapshot.segmentation_status == READY
    assert snapshot.settled


def test_no_services_means_disabled():
    session = RoomSession()
    snapshot = asyncio.run(session.load_room(solid(8, 8, (0, 0, 0))))

    assert snapshot.depth_status == DISABLED
    assert snapshot.segmentation_status == DISABLED
    assert snapshot.settled
    assert snapshot.depth is None and snapshot.segmentation is None


def test_init_services_tolerates_failures():
    depth = FakeDepthService()
    session = RoomSession(depth, FailingService())

    asyncio.run(session.init_services())

    assert depth.init_calls == 1


def test_snapshot_is_frozen():
    snapshot = asyncio.run(RoomSession(FakeDepthService()).load_room(solid(8, 8, (0, 0, 0))))
    with pytest.raises(dataclasses.FrozenInstanceError):
        snapshot.depth = None


def test_stale_result_is_dropped():
    service = GatedDepthService()
    session = RoomSession(service)
    first_room = solid(8, 8, (10, 10, 10))
    second_room = solid(8, 8, (20, 20, 20))

    async def scenario():
        first = asyncio.create_task(session.load_room(first_room))
        await asyncio.to_thread(service.started.wait, 10)

        in_flight = session.snapshot()
        assert in_flight.depth_status == PENDING
        assert not in_flight.settled
        assert in_flight.depth is None

        second = await session.load_room(second_room)
        service.release.set()
        await first
        return second

    second = asyncio.run(scenario())

    assert second.generation == 2
    final = session.snapshot()
    assert final.generation == 2
    assert final.room is second_room
    assert final.depth_status == READY
    # the first (stale) prediction returned depth 1.0
    assert final.depth.depth[0, 0] == 2.0
