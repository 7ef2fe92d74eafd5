"""Main entry point for the application."""

import os

from studyhub import create_app
from studyhub.extensions import socketio

app = create_app()


if __name__ == "__main__":
    socketio.run(
        app,
        debug=os.environ.get("FLASK_DEBUG") == "1",
        host="0.0.0.0",  # nosec
        port=int(os.environ.get("PORT") or 27272),
    )
