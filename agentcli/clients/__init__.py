"""Model collaborator clients."""
