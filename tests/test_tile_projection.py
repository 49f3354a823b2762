import numpy as np
import pytest

from tile_overlay.utils.config import FloorEffectsConfig, PatternConfig
from tile_overlay.utils.realistic_blending import gray_buffer
from tile_overlay.utils.tile_projection_engine import TileProjectionEngine, tile_repeat_counts

from tests.conftest import solid


@pytest.fixture
def engine():
    return TileProjectionEngine(pattern=PatternConfig(grout=False, noise_seed=0))


def test_repeat_counts_are_not_rounded():
    assert tile_repeat_counts((300, 300), (3000, 2400)) == (10.0, 8.0)
    tiles_x, tiles_y = tile_repeat_counts((300, 300), (3100, 3100))
    assert tiles_x == pytest.approx(10.3333, abs=1e-4)
    assert tiles_y == tiles_x


@pytest.mark.parametrize("tile_size, surface_size", [
    ((0, 300), (3000, 3000)),
    ((300, 300), (3000, -1)),
    (None, (3000, 3000)),
    ((float("inf"), 300), (3000, 3000)),
    ((300, 300), (float("nan"), 3000)),
    ({"width": 300}, (3000, 3000)),
    ((300, 300), ("wide", "tall")),
    ((1e-300, 300), (1e300, 3000)),
])
def test_repeat_counts_need_positive_sizes(tile_size, surface_size):
    assert tile_repeat_counts(tile_size, surface_size) is None


def test_repeat_counts_accept_width_height_mappings():
    tile = {"width": 300, "height": 300}
    assert tile_repeat_counts(tile, {"width": 3000, "height": 2400}) == (10.0, 8.0)
    assert tile_repeat_counts(tile, (3000, 2400)) == (10.0, 8.0)


def test_unusable_sizes_render_nothing(engine):
    tile = solid(8, 8, (10, 200, 30))
    quad = [(0, 0), (40, 0), (40, 30), (0, 30)]

    assert engine.project(tile, quad, (float("inf"), 300), (3000, 3000), 64, 48) is None
    assert engine.project(tile, quad, {"width": 300, "height": 300}, (3000, 3000), 64, 48) is not None


def test_grout_with_subpixel_tiles_covers_every_pixel():
    engine = TileProjectionEngine(pattern=PatternConfig(grout=True, grout_opacity=1.0,
                                                        grout_color=(0, 0, 0)))

    out = engine.add_grout(solid(12, 10, (255, 255, 255)), 1e12, 1e12)

    assert (out[:, :, :3] == 0).all()


def test_partial_tile_at_the_far_edge(engine):
    tile = solid(30, 30, (255, 255, 255))
    tile[:, :15, :3] = 0
    tiles_x, tiles_y = tile_repeat_counts((300, 300), (3100, 300))

    grid = engine.generate_tile_grid(tile, tiles_x, tiles_y, 310, 30)

    assert grid.shape == (30, 310, 4)
    # the last 10 columns show the first (black) third of a tile
    assert (grid[:, 300:310, :3] == 0).all()
    assert (grid[:, 286:299, :3] == 255).all()
    assert (grid[:, 3:13, :3] == 0).all()


def test_grid_repeats_scaled_tile(engine):
    tile = solid(8, 8, (10, 200, 30))
    grid = engine.generate_tile_grid(tile, 4.0, 2.0, 64, 32)

    assert grid.shape == (32, 64, 4)
    assert (grid[:, :, :3] == (10, 200, 30)).all()
    assert (grid[:, :, 3] == 255).all()


def test_grout_lines_at_tile_boundaries():
    engine = TileProjectionEngine(pattern=PatternConfig(grout=True, grout_opacity=0.3))
    grid = solid(50, 40, (255, 0, 0))

    out = engine.add_grout(grid, 2.5, 4.0)

    seam_cols = [c for c in range(50) if out[5, c, 0] != 255]
    seam_rows = [r for r in range(40) if out[r, 5, 0] != 255]
    assert seam_cols == [20, 40]
    assert seam_rows == [10, 20, 30]
    assert abs(int(out[5, 20, 1]) - 9) <= 1
    assert out[5, 20, 0] < 200
    assert (out[:, :, 3] == 255).all()
    assert (grid[:, :, 0] == 255).all()


def test_lighting_multiplies_pattern(engine):
    grid = solid(20, 10, (255, 255, 255))
    lighting = gray_buffer(np.full((10, 20), 128))

    single = engine.apply_lighting(grid, lighting, strength=1.0)
    double = engine.apply_lighting(grid, lighting, strength=2.0)

    assert (single[:, :, :3] == 128).all()
    assert (np.abs(double[:, :, :3].astype(int) - 64) <= 1).all()


def test_mismatched_lighting_is_ignored(engine):
    grid = solid(20, 10, (200, 200, 200))
    out = engine.apply_lighting(grid, gray_buffer(np.zeros((5, 5))))
    np.testing.assert_array_equal(out, grid)


def test_noise_is_seeded(engine):
    grid = solid(40, 30, (128, 128, 128))

    a = engine.add_tile_variation(grid, 0.05, seed=7)
    b = engine.add_tile_variation(grid, 0.05, seed=7)
    c = engine.add_tile_variation(grid, 0.05, seed=8)

    np.testing.assert_array_equal(a, b)
    assert not np.array_equal(a, c)
    np.testing.assert_array_equal(engine.add_tile_variation(grid, 0.0), grid)


def test_floor_effects_fade_toward_the_far_edge():
    engine = TileProjectionEngine(floor_effects=FloorEffectsConfig())
    grid = solid(100, 100, (255, 0, 0))

    out = engine.add_floor_effects(grid).astype(int)

    # row 0 is the near edge
    assert out[0, 50, 0] > out[99, 50, 0]
    assert out[99, 50, 1] > out[0, 50, 1]
    assert out[50, 0, 0] < out[50, 50, 0]
    assert (out[:, :, 3] == 255).all()


def test_floor_effects_can_be_switched_off():
    engine = TileProjectionEngine(floor_effects=FloorEffectsConfig(
        depth_gradient=False, desaturate=False, vignette=False))
    grid = solid(30, 20, (90, 140, 200))
    np.testing.assert_array_equal(engine.add_floor_effects(grid), grid)


def test_render_pattern_skips_invalid_input(engine, red_tile):
    assert engine.render_pattern(red_tile, (300, 300), (0, 3000), 100, 100) is None
    assert engine.render_pattern(red_tile, (300, 300), (3000, 3000), 0, 100) is None
    assert engine.render_pattern(np.zeros((0, 0, 4), np.uint8), (300, 300), (3000, 3000), 100, 100) is None


def test_project_onto_quad(engine, red_tile, square_quad):
    layer = engine.project(red_tile, square_quad, (300, 300), (3000, 3000), 800, 600)

    assert layer.shape == (600, 800, 4)
    assert tuple(layer[300, 300]) == (255, 0, 0, 255)
    assert layer[50, 50, 3] == 0
    assert layer[550, 700, 3] == 0


def test_project_degenerate_quad_is_skipped(engine, red_tile):
    line = [(100, 100), (200, 200), (300, 300), (400, 400)]
    assert engine.project(red_tile, line, (300, 300), (3000, 3000), 800, 600) is None
    assert engine.project(red_tile, None, (300, 300), (3000, 3000), 800, 600) is None
