"""EventSub WebSocket feed."""
