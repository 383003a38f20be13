"""System prompt construction."""
