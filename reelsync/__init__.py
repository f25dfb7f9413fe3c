"""ReelSync - Watch History Synchronization

Imports and reconciles movie watch activity from streaming exports, Trakt and
Plex into one canonical per-user history.
"""

__version__ = "0.1.0"
