import io
import json

import pytest
from PIL import Image

from frontend.app import create_app
from tile_overlay.utils.image_io import encode_png

from tests.conftest import FakeDepthService, FakeSegmentationService, solid

WALL_QUAD = [[20, 20], [180, 20], [180, 130], [20, 130]]


@pytest.fixture
def tiles_folder(tmp_path):
    for relative, color in (("wall/Red Gloss.png", (255, 0, 0)),
                            ("floor/oak.png", (150, 100, 50)),
                            ("both/white.png", (250, 250, 250))):
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(encode_png(solid(16, 16, color)))
    return tmp_path


@pytest.fixture
def client(plain_config, tiles_folder):
    app = create_app(config=plain_config, tiles_folder=str(tiles_folder))
    app.config['TESTING'] = True
    return app.test_client()


def room_upload():
    return (io.BytesIO(encode_png(solid(200, 150, (120, 120, 120)))), 'room.png')


def test_list_tiles(client):
    response = client.get('/api/tiles')

    assert response.status_code == 200
    assert response.get_json() == {
        'wall': ['Red Gloss.png'],
        'floor': ['oak.png'],
        'both': ['white.png'],
    }


def test_catalog_filtered_by_surface(client):
    response = client.get('/api/catalog?surface=floor')

    assert response.status_code == 200
    entries = response.get_json()
    assert [e['id'] for e in entries] == ['oak', 'white']
    assert entries[0]['imageUrl'] == '/tiles/floor/oak.png'
    assert entries[0]['size'] == '60×60 cm'

    assert client.get('/api/catalog?surface=roof').status_code == 400
    assert len(client.get('/api/catalog').get_json()) == 3


def test_serve_tile(client):
    response = client.get('/tiles/wall/Red%20Gloss.png')
    assert response.status_code == 200
    assert response.mimetype == 'image/png'
    assert client.get('/tiles/wall/missing.png').status_code == 404


def test_render_wall(client):
    response = client.post('/api/render', data={
        'room': room_upload(),
        'wall_quad': json.dumps(WALL_QUAD),
        'wall_tile': 'red-gloss',
    }, content_type='multipart/form-data')

    assert response.status_code == 200
    assert response.mimetype == 'image/png'
    assert response.headers['X-Occlusion-Wall'] == 'none'
    with Image.open(io.BytesIO(response.data)) as img:
        assert img.size == (200, 150)
        rgba = img.convert('RGBA')
        assert rgba.getpixel((100, 75)) == (255, 0, 0, 255)
        assert rgba.getpixel((5, 5)) == (120, 120, 120, 255)


def test_render_accepts_width_height_sizes(client):
    response = client.post('/api/render', data={
        'room': room_upload(),
        'wall_quad': json.dumps(WALL_QUAD),
        'wall_tile': 'red-gloss',
        'wall_tile_size': json.dumps({'width': 300, 'height': 300}),
        'wall_size': json.dumps({'width': 3000, 'height': 2400}),
    }, content_type='multipart/form-data')

    assert response.status_code == 200
    with Image.open(io.BytesIO(response.data)) as img:
        assert img.convert('RGBA').getpixel((100, 75)) == (255, 0, 0, 255)


@pytest.mark.parametrize("tile_size", [
    '[1e999, 300]',
    '[1' + '0' * 400 + ', 300]',
    '{"width": 300}',
    '[0, 300]',
])
def test_unusable_tile_size_renders_nothing(client, tile_size):
    response = client.post('/api/render', data={
        'room': room_upload(),
        'wall_quad': json.dumps(WALL_QUAD),
        'wall_tile': 'red-gloss',
        'wall_tile_size': tile_size,
    }, content_type='multipart/form-data')

    assert response.status_code == 200
    assert response.headers['X-Occlusion-Wall'] == 'none'
    with Image.open(io.BytesIO(response.data)) as img:
        assert img.convert('RGBA').getpixel((100, 75)) == (120, 120, 120, 255)


def test_render_with_uploaded_tile_and_models(plain_config, tiles_folder):
    app = create_app(config=plain_config, tiles_folder=str(tiles_folder),
                     services=(FakeDepthService(), FakeSegmentationService()))
    tile = (io.BytesIO(encode_png(solid(8, 8, (0, 0, 255)))), 'blue.png')

    response = app.test_client().post('/api/render', data={
        'room': room_upload(),
        'floor_quad': json.dumps(WALL_QUAD),
        'floor_tile_file': tile,
        'floor_tile_size': json.dumps([300, 300]),
        'floor_size': json.dumps([3000, 3000]),
        'closer_is_higher': 'false',
    }, content_type='multipart/form-data')

    assert response.status_code == 200
    assert response.headers['X-Occlusion-Floor'] == 'depth'
    assert 'X-Occlusion-Wall' not in response.headers


@pytest.mark.parametrize("data, message", [
    ({'wall_quad': json.dumps(WALL_QUAD), 'wall_tile': 'red-gloss'}, 'No room image'),
    ({'wall_tile': 'red-gloss'}, 'No surface quad'),
    ({'wall_quad': json.dumps(WALL_QUAD), 'wall_tile': 'granite'}, 'Unknown tile'),
    ({'wall_quad': '[[1, 2]', 'wall_tile': 'red-gloss'}, 'not valid JSON'),
])
def test_bad_render_requests(client, data, message):
    if message != 'No room image':
        data = dict(data, room=room_upload())

    response = client.post('/api/render', data=data, content_type='multipart/form-data')

    assert response.status_code == 400
    assert message in response.get_json()['error']


def test_undecodable_room(client):
    response = client.post('/api/render', data={
        'room': (io.BytesIO(b'not an image'), 'room.png'),
        'wall_quad': json.dumps(WALL_QUAD),
        'wall_tile': 'red-gloss',
    }, content_type='multipart/form-data')

    assert response.status_code == 400
    assert 'Could not read room image' in response.get_json()['error']
