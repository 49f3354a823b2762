"""
Tile Overlay - Web Application
==============================
Flask API behind the tile overlay page.

- ``GET  /api/tiles``            tile filenames by folder (wall / floor / both)
- ``GET  /api/catalog``          catalog entries, optionally filtered by surface
- ``GET  /tiles/<path>``         tile images
- ``POST /api/render``           room photo + quads + tiles -> flattened PNG
"""

import asyncio
import dataclasses
import io
import json
import logging
import os
import sys

from flask import Flask, jsonify, request, send_file, send_from_directory
from flask_cors import CORS
from werkzeug.utils import secure_filename

# Add parent src to path for engine imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
from tile_overlay.utils.catalog import (  # noqa: E402
    effective_tile_size,
    find_tile,
    format_tile_size,
    list_tile_files,
    load_catalog,
    tiles_for_surface,
)
from tile_overlay.utils.compositor import SurfaceCompositor, compose_scene  # noqa: E402
from tile_overlay.utils.config import SURFACE_KINDS, load_config  # noqa: E402
from tile_overlay.utils.image_io import decode_image, encode_png  # noqa: E402
from tile_overlay.utils.session import RoomSession  # noqa: E402

logger = logging.getLogger(__name__)

TILES_FOLDER = os.path.join(os.path.dirname(__file__), 'static', 'tiles')
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp', 'gif', 'avif'}


class RequestError(Exception):
    """Bad render request; reported as HTTP 400."""


def allowed_file(filename):
    """Check if file extension is allowed"""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _json_field(name, default=None):
    raw = request.form.get(name)
    if raw is None or raw == '':
        return default
    try:
        return json.loads(raw)
    except ValueError:
        raise RequestError(f'Field {name} is not valid JSON')


def _bool_field(name):
    raw = request.form.get(name)
    if raw is None:
        return None
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _upload_bytes(name):
    file = request.files.get(name)
    if file is None or file.filename == '':
        return None
    if not allowed_file(secure_filename(file.filename)):
        raise RequestError(f'Invalid file type for {name}')
    return file.read()


def create_app(config=None, tiles_folder=None, services=None):
    """
    Build the web application.

    Args:
        config: ``Config`` (defaults to ``load_config()``)
        tiles_folder: Catalog root with wall/, floor/ and both/
        services: ``(depth, segmentation)`` model services shared by all
                  requests, or None to render without model occlusion
    """
    app = Flask(__name__)
    app.config['TILE_CONFIG'] = config or load_config()
    app.config['TILES_FOLDER'] = tiles_folder or TILES_FOLDER
    app.config['MODEL_SERVICES'] = services
    app.config['MAX_CONTENT_LENGTH'] = 50 * 1024 * 1024  # 50MB max
    CORS(app)

    @app.errorhandler(RequestError)
    def bad_request(error):
        return jsonify({'error': str(error)}), 400

    @app.route('/api/tiles')
    def api_tiles():
        """Tile filenames by folder"""
        return jsonify(list_tile_files(app.config['TILES_FOLDER']))

    @app.route('/api/catalog')
    def api_catalog():
        """Catalog entries; ``?surface=wall|floor`` filters like the picker does"""
        catalog = load_catalog(app.config['TILES_FOLDER'])
        surface = request.args.get('surface')
        if surface:
            if surface not in SURFACE_KINDS:
                return jsonify({'error': f'Unknown surface: {surface}'}), 400
            catalog = tiles_for_surface(catalog, surface)
        return jsonify([
            {
                'id': tile.id,
                'name': tile.name,
                'imageUrl': tile.image_url,
                'surface': tile.surface,
                'size': format_tile_size(tile),
            }
            for tile in catalog
        ])

    @app.route('/tiles/<path:filename>')
    def serve_tile(filename):
        """Serve tile images"""
        return send_from_directory(app.config['TILES_FOLDER'], filename)

    @app.route('/api/render', methods=['POST'])
    def api_render():
        """Render wall/floor overlays onto the uploaded room photo"""
        room_bytes = _upload_bytes('room')
        if room_bytes is None:
            raise RequestError('No room image provided')

        tile_config = app.config['TILE_CONFIG']
        closer_is_higher = _bool_field('closer_is_higher')
        if closer_is_higher is not None:
            tile_config = dataclasses.replace(
                tile_config,
                occlusion=dataclasses.replace(tile_config.occlusion,
                                              depth_closer_is_higher=closer_is_higher),
            )

        catalog = load_catalog(app.config['TILES_FOLDER'])
        jobs = []
        for surface in SURFACE_KINDS:
            quad = _json_field(f'{surface}_quad')
            if quad is None:
                continue
            tile_bytes = _upload_bytes(f'{surface}_tile_file')
            tile_size = _json_field(f'{surface}_tile_size')
            if tile_bytes is None:
                tile_id = request.form.get(f'{surface}_tile')
                product = find_tile(catalog, tile_id) if tile_id else None
                if product is None:
                    raise RequestError(f'Unknown tile for {surface}: {tile_id}')
                with open(product.path, 'rb') as f:
                    tile_bytes = f.read()
                if tile_size is None:
                    tile_size = effective_tile_size(product, tile_config, surface)
            jobs.append((surface, quad, tile_bytes, tile_size, _json_field(f'{surface}_size')))
        if not jobs:
            raise RequestError('No surface quad provided')

        scene, sources = asyncio.run(
            _render(tile_config, app.config['MODEL_SERVICES'], room_bytes, jobs)
        )
        response = send_file(io.BytesIO(encode_png(scene)), mimetype='image/png',
                             download_name='tile-overlay.png')
        for surface, source in sources.items():
            response.headers[f'X-Occlusion-{surface.capitalize()}'] = source or 'none'
        return response

    return app


async def _render(config, services, room_bytes, jobs):
    room_result = await decode_image(room_bytes)
    if not room_result.ok:
        raise RequestError(f'Could not read room image: {room_result.error}')
    room = room_result.image

    session = RoomSession(*services) if services else RoomSession()
    snapshot = await session.load_room(room)

    compositor = SurfaceCompositor(config)
    layers = []
    sources = {}
    for surface, quad, tile_bytes, tile_size, surface_size in jobs:
        tile_result = await decode_image(tile_bytes)
        if not tile_result.ok:
            raise RequestError(f'Could not read {surface} tile: {tile_result.error}')
        result = compositor.render_surface(
            room, quad, tile_result.image,
            surface=surface,
            tile_size_mm=tile_size,
            surface_size_mm=surface_size,
            occlusion=snapshot,
        )
        layers.append(result)
        sources[surface] = result.occlusion_source if result is not None else None
    return compose_scene(room, layers), sources


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    os.makedirs(TILES_FOLDER, exist_ok=True)
    app = create_app()
    print("\n" + "=" * 60)
    print("🏠 TILE OVERLAY - Web Application")
    print("=" * 60)
    print(f"\n📁 Tiles folder: {TILES_FOLDER}")
    print(f"🎨 Available tiles: {len(load_catalog(TILES_FOLDER))}")
    print("\n🌐 Starting server...")
    print("   Open http://localhost:5000 in your browser")
    print("=" * 60 + "\n")

    app.run(host='0.0.0.0', port=5000, debug=True)
