"""Sandbox, permissions, dispatch and the agent loop."""
