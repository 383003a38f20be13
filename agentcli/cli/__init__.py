"""Terminal rendering and the interactive session driver."""
