"""
Application entry point
"""
import os

from app import create_app

app = create_app()

if __name__ == '__main__':
    host = os.getenv('FLASK_HOST', '0.0.0.0')
    port = int(os.getenv('FLASK_PORT', 5000))
    debug = os.getenv('FLASK_DEBUG', 'False').lower() in ('true', '1', 'yes')

    app.logger.info(f"Starting Flask application on {host}:{port}")
    app.logger.info(f"Debug mode: {debug}")

    try:
        app.run(
            host=host,
            port=port,
            debug=debug,
            threaded=True,
            use_reloader=False,
        )
    finally:
        app.extensions['attendance']['session'].stop()
