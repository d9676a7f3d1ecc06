"""Core engine: discovery, reconciliation, sync orchestration and state."""
