import numpy as np
import pytest

from tile_overlay.detectors.depth_detector import DepthResult
from tile_overlay.detectors.segformer_detector import ADE20K_CLASS_IDS, SegmentationResult
from tile_overlay.utils.compositor import CompositeResult, SurfaceCompositor, compose_scene
from tile_overlay.utils.config import Config, config_from_dict
from tile_overlay.utils.occlusion import StaticMaskSource
from tile_overlay.utils.realistic_blending import mask_from_alpha
from tile_overlay.utils.session import DISABLED, READY, UNAVAILABLE, OcclusionInputs

from tests.conftest import solid


@pytest.fixture
def circle_source():
    """Foreground disc of radius 40 at (300, 300), everything else is wall."""
    ys, xs = np.mgrid[0:600, 0:800]
    disc = (xs - 300) ** 2 + (ys - 300) ** 2 <= 40 ** 2
    return StaticMaskSource(mask_from_alpha(np.where(disc, 0, 255)))


def test_plain_overlay_without_occlusion(room, square_quad, red_tile, plain_config):
    result = SurfaceCompositor(plain_config).render_surface(room, square_quad, red_tile, sources=[])

    assert isinstance(result, CompositeResult)
    assert result.occlusion_source is None
    assert result.lighting is None
    assert result.layer.shape == (600, 800, 4)
    assert result.layer[50, 50, 3] == 0

    scene = compose_scene(room, [result])
    assert tuple(scene[300, 300]) == (255, 0, 0, 255)
    assert tuple(scene[50, 50]) == (120, 120, 120, 255)
    assert tuple(scene[550, 700]) == (120, 120, 120, 255)


def test_quad_edge_is_feathered(room, square_quad, red_tile, plain_config):
    result = SurfaceCompositor(plain_config).render_surface(room, square_quad, red_tile, sources=[])
    row = result.mask[300, 90:110, 3].astype(int)

    assert row[0] == 0
    assert row[-1] == 255
    assert ((row > 0) & (row < 255)).any()
    assert (np.diff(row) >= 0).all()


def test_foreground_object_stays_visible(room, square_quad, red_tile, plain_config, circle_source):
    result = SurfaceCompositor(plain_config).render_surface(
        room, square_quad, red_tile, sources=[circle_source]
    )

    assert result.occlusion_source == "manual"
    assert result.lighting.shape == (400, 400, 4)
    assert result.layer[300, 300, 3] == 0

    scene = compose_scene(room, [result])
    assert tuple(scene[300, 300]) == (120, 120, 120, 255)
    assert tuple(scene[200, 200]) == (255, 0, 0, 255)


def test_degenerate_quad_renders_nothing(room, red_tile, plain_config):
    compositor = SurfaceCompositor(plain_config)
    line = [(100, 100), (200, 200), (300, 300), (400, 400)]

    assert compositor.render_surface(room, line, red_tile) is None
    assert compositor.render_surface(room, None, red_tile) is None
    np.testing.assert_array_equal(compose_scene(room, [None]), room)


def test_invalid_sizes_render_nothing(room, square_quad, red_tile, plain_config):
    compositor = SurfaceCompositor(plain_config)
    assert compositor.render_surface(room, square_quad, red_tile, surface_size_mm=(0, 0), sources=[]) is None
    assert compositor.render_surface(room, square_quad, red_tile, tile_size_mm=(-1, 300), sources=[]) is None
    assert compositor.render_surface(room, square_quad, red_tile,
                                     tile_size_mm=(float("inf"), 300), sources=[]) is None
    assert compositor.render_surface(room, square_quad, red_tile,
                                     tile_size_mm={"width": 300, "height": 300}, sources=[]) is not None


def test_unknown_surface_is_rejected(room, square_quad, red_tile, plain_config):
    with pytest.raises(ValueError):
        SurfaceCompositor(plain_config).render_surface(room, square_quad, red_tile, surface="ceiling")


def _inputs(depth=None, segmentation=None):
    return OcclusionInputs(
        generation=1,
        room=None,
        depth=depth,
        segmentation=segmentation,
        depth_status=READY if depth is not None else DISABLED,
        segmentation_status=READY if segmentation is not None else DISABLED,
    )


def test_depth_takes_priority_over_segmentation(room, square_quad, red_tile, plain_config):
    depth = DepthResult(depth=np.ones((48, 64), dtype=np.float32), width=64, height=48)
    segmentation = SegmentationResult(class_map=np.zeros((32, 32), dtype=np.int32),
                                      class_ids=dict(ADE20K_CLASS_IDS))
    compositor = SurfaceCompositor(plain_config)

    both = compositor.render_surface(room, square_quad, red_tile,
                                     occlusion=_inputs(depth, segmentation))
    assert both.occlusion_source == "depth"

    segmentation_only = compositor.render_surface(room, square_quad, red_tile,
                                                  occlusion=_inputs(segmentation=segmentation))
    assert segmentation_only.occlusion_source == "segmentation"
    assert segmentation_only.layer[300, 300, 3] == 255

    # class 0 is wall, so the floor tier hides everything
    floor = compositor.render_surface(room, square_quad, red_tile, surface="floor",
                                      occlusion=_inputs(segmentation=segmentation))
    assert floor.occlusion_source == "segmentation"
    assert floor.layer[:, :, 3].max() == 0


def test_edge_fallback_when_no_models(room, square_quad, red_tile):
    config = config_from_dict({
        "occlusion": {"edge_fallback": True},
        "pattern": {"grout": False, "noise_seed": 0},
    })
    result = SurfaceCompositor(config).render_surface(room, square_quad, red_tile)

    assert result.occlusion_source == "edges"
    assert result.layer[300, 300, 3] == 255


def test_floor_darkens_toward_the_far_edge(room, red_tile):
    config = config_from_dict({
        "occlusion": {"edge_fallback": False},
        "pattern": {"grout": False},
        "surfaces": {"floor": {"noise_opacity": 0.0, "floor_effects": True}},
    })
    floor_quad = [(100, 550), (700, 550), (550, 350), (250, 350)]

    result = SurfaceCompositor(config).render_surface(room, floor_quad, red_tile, surface="floor")

    near = result.layer[540, 400]
    far = result.layer[360, 400]
    assert near[3] == 255 and far[3] == 255
    assert int(near[0]) > int(far[0])


def test_compose_scene_layers_in_order(room):
    first = solid(800, 600, (0, 0, 255))
    second = np.zeros_like(first)
    second[:300] = (0, 255, 0, 255)

    scene = compose_scene(room, [first, second])

    assert tuple(scene[100, 100]) == (0, 255, 0, 255)
    assert tuple(scene[500, 100]) == (0, 0, 255, 255)
    np.testing.assert_array_equal(compose_scene(room, [solid(10, 10, (0, 0, 0))]), room)


def test_failed_models_leave_the_feathered_quad_mask(room, square_quad, red_tile):
    room = room.copy()
    room[250:350, 250:350, :3] = 20
    compositor = SurfaceCompositor(Config())
    failed = OcclusionInputs(generation=1, room=room, depth=None, segmentation=None,
                             depth_status=UNAVAILABLE, segmentation_status=UNAVAILABLE)

    result = compositor.render_surface(room, square_quad, red_tile, occlusion=failed)

    expected = compositor.masks.feathered_quad_mask(800, 600, square_quad, feather_px=5)
    np.testing.assert_array_equal(result.mask, expected)
    assert result.occlusion_source is None
    assert (result.layer[110:490, 110:490, 3] == 255).all()
    # the dark object inside the quad stays covered
    assert (result.layer[250:350, 250:350, 3] == 255).all()


def test_axis_aligned_grid_is_undistorted(room, square_quad, red_tile):
    config = config_from_dict({
        "occlusion": {"edge_fallback": False},
        "pattern": {"grout": True, "noise_seed": 0},
        "surfaces": {"wall": {"noise_opacity": 0.0}},
    })
    result = SurfaceCompositor(config).render_surface(
        room, square_quad, red_tile, tile_size_mm=(300, 300), surface_size_mm=(3000, 2400)
    )
    layer = result.layer

    # 10 tiles across 400px and 8 down: seams every 40px and 50px from the quad origin
    seam_cols = [x for x in range(110, 490) if layer[325, x, 0] < 255]
    seam_rows = [y for y in range(110, 490) if layer[y, 325, 0] < 255]
    assert seam_cols == list(range(140, 490, 40))
    assert seam_rows == list(range(150, 490, 50))
