"""TuneTrace — concert discovery backend.

REST + WebSocket server behind the TuneTrace mobile app: users track
artists and favorite concerts, a background poller watches the concert
catalog, and new shows for tracked artists become notifications pushed
live to connected clients.
"""

__version__ = "1.0.0"
