#!/usr/bin/env python3
"""
Color Background Remover API Server
Upload an image, pick background colors from its palette, tune the tolerance
and download the transparent PNG.
"""

import os
import logging
from io import BytesIO
from typing import Dict, Optional
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS

# --- Centralized Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
    datefmt='%H:%M:%S'
)

from bgremover.models.errors import (
    BackgroundRemoverError,
    DecodeFailure,
    InvalidSelection,
    InvalidTolerance,
    SessionStateError,
)
from bgremover.pipeline.removal_session import RemovalSession

app = Flask(__name__)
CORS(app)  # Enable CORS for frontend communication

# Configuration
MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_SIZE_MB", "25")) * 1024 * 1024
DOWNLOAD_FILENAME = os.getenv("DOWNLOAD_FILENAME", "processed-image.png")
MASK_WAIT_TIMEOUT = float(os.getenv("MASK_WAIT_TIMEOUT", "30"))

app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH


def parse_extensions(raw: str) -> set:
    """Comma-separated extension list to a set of bare lowercase suffixes."""
    return {ext.strip().lower().lstrip('.') for ext in raw.split(',') if ext.strip().strip('.')}


ALLOWED_EXTENSIONS = parse_extensions(os.getenv("ALLOWED_EXTENSIONS", "png,jpg,jpeg"))

logger = logging.getLogger(__name__)

# Session storage for removal state
sessions: Dict[str, RemovalSession] = {}


def get_or_create_session(session_id: str = None) -> RemovalSession:
    """Get existing session or create new one."""
    if session_id and session_id in sessions:
        return sessions[session_id]

    session = RemovalSession(session_id)
    sessions[session.session_id] = session
    return session


def lookup_session(session_id: Optional[str]) -> Optional[RemovalSession]:
    if not session_id:
        return None
    return sessions.get(session_id)


def discard_session(session_id: str) -> bool:
    """Remove a session from the map and release its worker."""
    session = sessions.pop(session_id, None)
    if session is None:
        return False
    session.close()
    return True


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def invalid_session():
    return jsonify({'success': False, 'message': 'Invalid session'}), 400


def selection_response(session: RemovalSession, message: str):
    status = session.status()
    return jsonify({
        'success': True,
        'session_id': session.session_id,
        'selected_colors': status['selected_colors'],
        'tolerance': status['tolerance'],
        'processing': status['processing'],
        'message': message
    })


@app.route('/api/load-image', methods=['POST'])
def load_image():
    """Decode an uploaded image and extract its palette."""
    created = None
    try:
        if 'image' not in request.files:
            return jsonify({'success': False, 'message': 'No image provided'}), 400

        file = request.files['image']
        if file.filename == '':
            return jsonify({'success': False, 'message': 'No file selected'}), 400
        if not allowed_file(file.filename):
            return jsonify({'success': False, 'message': 'Only PNG or JPG images are supported'}), 400

        requested_id = request.form.get('session_id')
        session = lookup_session(requested_id)
        if session is None:
            session = created = get_or_create_session(requested_id)
        palette = session.load(file.read())

        logger.info(f"Loaded image for session {session.session_id}: {len(palette)} colors")

        status = session.status()
        return jsonify({
            'success': True,
            'session_id': session.session_id,
            'palette': status['palette'],
            'width': status['width'],
            'height': status['height'],
            'tolerance': status['tolerance'],
            'message': f'Extracted {len(palette)} colors' if palette else 'No colors found'
        })

    except DecodeFailure as e:
        logger.error(f"Image decode error: {e}")
        if created is not None:
            discard_session(created.session_id)
        return jsonify({'success': False, 'message': 'Cannot process image'}), 400
    except Exception as e:
        logger.error(f"Image loading error: {e}")
        if created is not None:
            discard_session(created.session_id)
        return jsonify({'success': False, 'message': f'Error loading image: {str(e)}'}), 500


@app.route('/api/toggle-color', methods=['POST'])
def toggle_color():
    """Select a palette color, or deselect it when already selected."""
    data = json_body()
    session = lookup_session(data.get('session_id'))
    if session is None:
        return invalid_session()

    try:
        session.toggle_color(data.get('color'))
        return selection_response(session, 'Selection updated')
    except (InvalidSelection, SessionStateError) as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except Exception as e:
        logger.error(f"Toggle color error: {e}")
        return jsonify({'success': False, 'message': 'Error updating selection'}), 500


@app.route('/api/select-colors', methods=['POST'])
def select_colors():
    """Replace the whole selection."""
    data = json_body()
    session = lookup_session(data.get('session_id'))
    if session is None:
        return invalid_session()

    colors = data.get('colors')
    if not isinstance(colors, list):
        return jsonify({'success': False, 'message': "'colors' must be a list"}), 400

    try:
        session.select_colors(colors)
        return selection_response(session, 'Selection updated')
    except (InvalidSelection, SessionStateError) as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except Exception as e:
        logger.error(f"Select colors error: {e}")
        return jsonify({'success': False, 'message': 'Error updating selection'}), 500


@app.route('/api/tolerance', methods=['POST'])
def set_tolerance():
    """Change the color tolerance (0-100)."""
    data = json_body()
    session = lookup_session(data.get('session_id'))
    if session is None:
        return invalid_session()

    try:
        session.set_tolerance(data.get('tolerance'))
        return selection_response(session, 'Tolerance updated')
    except (InvalidTolerance, SessionStateError) as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except Exception as e:
        logger.error(f"Tolerance error: {e}")
        return jsonify({'success': False, 'message': 'Error updating tolerance'}), 500


@app.route('/api/status', methods=['GET'])
def status():
    """Current state, palette, selection and processing flag."""
    session = lookup_session(request.args.get('session_id'))
    if session is None:
        return invalid_session()
    return jsonify({'success': True, **session.status()})


def _wait_for_result(session: RemovalSession) -> bytes:
    return session.encode_result(timeout=MASK_WAIT_TIMEOUT)


@app.route('/api/preview', methods=['GET'])
def preview():
    """Latest result as a base64 PNG data URL."""
    session = lookup_session(request.args.get('session_id'))
    if session is None:
        return invalid_session()

    try:
        result = session.wait(timeout=MASK_WAIT_TIMEOUT)
        if result is None:
            return jsonify({'success': False, 'message': 'No image loaded'}), 400
        return jsonify({
            'success': True,
            'session_id': session.session_id,
            'image': session.image_service.to_data_url(result),
            'selected_colors': session.settings.hex_targets(),
            'tolerance': session.settings.tolerance
        })
    except TimeoutError as e:
        logger.error(f"Preview timed out: {e}")
        return jsonify({'success': False, 'message': 'Still processing'}), 503
    except BackgroundRemoverError as e:
        logger.error(f"Preview error: {e}")
        return jsonify({'success': False, 'message': str(e)}), 500


@app.route('/api/download', methods=['GET'])
def download():
    """Latest result as a PNG attachment."""
    session = lookup_session(request.args.get('session_id'))
    if session is None:
        return invalid_session()

    try:
        png_bytes = _wait_for_result(session)
    except SessionStateError:
        return jsonify({'success': False, 'message': 'No image loaded'}), 400
    except TimeoutError as e:
        logger.error(f"Download timed out: {e}")
        return jsonify({'success': False, 'message': 'Still processing'}), 503
    except BackgroundRemoverError as e:
        logger.error(f"Download error: {e}")
        return jsonify({'success': False, 'message': 'Error encoding image'}), 500

    return send_file(BytesIO(png_bytes), mimetype='image/png',
                     as_attachment=True, download_name=DOWNLOAD_FILENAME)


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'message': 'Color Background Remover API is running',
        'active_sessions': len(sessions)
    })


@app.route('/api/clear-session', methods=['POST'])
def clear_session():
    """Clear a session and free memory."""
    try:
        session_id = json_body().get('session_id')
        if session_id and discard_session(session_id):
            return jsonify({'success': True, 'message': 'Session cleared'})
        else:
            return jsonify({'success': False, 'message': 'Session not found'})
    except Exception as e:
        logger.error(f"Error clearing session: {e}")
        return jsonify({'success': False, 'message': 'Error clearing session'}), 500


@app.errorhandler(413)
def too_large(e):
    """Handle file too large error."""
    return jsonify({'error': f'File too large. Maximum size is {MAX_CONTENT_LENGTH // (1024*1024)}MB.'}), 413


@app.errorhandler(500)
def internal_error(e):
    """Handle internal server error."""
    logger.error(f"Internal server error: {e}")
    return jsonify({'error': 'Internal server error'}), 500


def main():
    print("🚀 Starting Color Background Remover API Server...")
    print(f"🔧 Max upload size: {MAX_CONTENT_LENGTH // (1024*1024)}MB")
    print("🌐 CORS enabled for frontend communication")
    print("📋 Endpoints:")
    print("   1. /api/load-image")
    print("   2. /api/toggle-color  |  /api/select-colors")
    print("   3. /api/tolerance")
    print("   4. /api/preview  |  /api/download")
    print("="*60)

    app.run(debug=False, host='0.0.0.0', port=int(os.getenv("API_SERVER_PORT", "5002")), threaded=True)


if __name__ == '__main__':
    main()
