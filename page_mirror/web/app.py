"""
Flask application serving a mirrored page for preview.

Serves the saved document at ``/`` and the downloaded assets below it.
"""

import os

from flask import Flask, send_from_directory

from ..utils.constants import (
    ASSETS_DIR,
    DEFAULT_DOCUMENT_NAME,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SERVE_PORT,
    FONTS_DIR,
    IMAGES_DIR,
)


def create_app(
    output_dir: str = DEFAULT_OUTPUT_DIR,
    document_name: str = DEFAULT_DOCUMENT_NAME
) -> Flask:
    """
    Create the preview application.

    Args:
        output_dir: Directory produced by a scrape
        document_name: Saved document inside the output directory

    Returns:
        Configured Flask application

    Raises:
        FileNotFoundError: If the document has not been scraped yet
    """
    output_dir = os.path.abspath(output_dir)
    document_path = os.path.join(output_dir, document_name)
    if not os.path.isfile(document_path):
        raise FileNotFoundError(
            f"{document_path} not found. Please run the scrape command first."
        )

    app = Flask(__name__, static_folder=None)
    app.config['OUTPUT_DIR'] = output_dir

    assets_dir = os.path.join(output_dir, ASSETS_DIR)
    fonts_dir = os.path.join(output_dir, FONTS_DIR)
    images_dir = os.path.join(output_dir, IMAGES_DIR)

    @app.route('/')
    def index():
        """Serve the mirrored document."""
        return send_from_directory(output_dir, document_name)

    @app.route('/assets/<path:filename>')
    def assets(filename):
        return send_from_directory(assets_dir, filename)

    # Stylesheets sometimes reference fonts by absolute path
    @app.route('/fonts/<path:filename>')
    @app.route('/webfonts/<path:filename>')
    def fonts(filename):
        return send_from_directory(fonts_dir, filename)

    @app.route('/images/<path:filename>')
    def images(filename):
        return send_from_directory(images_dir, filename)

    return app


def run_app(
    output_dir: str = DEFAULT_OUTPUT_DIR,
    document_name: str = DEFAULT_DOCUMENT_NAME,
    host: str = '127.0.0.1',
    port: int = DEFAULT_SERVE_PORT,
    debug: bool = False
) -> None:
    """Run the preview server."""
    app = create_app(output_dir, document_name)
    app.run(host=host, port=port, debug=debug)
