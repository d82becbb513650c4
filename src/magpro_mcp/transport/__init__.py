"""Serial transport and session log sink."""
