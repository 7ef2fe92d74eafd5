"""Flask extensions for the application."""

from flask_socketio import SocketIO

from studyhub.core.store import DocumentStore
from studyhub.realtime.coordinator import RealtimeCoordinator

socketio = SocketIO()
store = DocumentStore()
coordinator = RealtimeCoordinator(store)
