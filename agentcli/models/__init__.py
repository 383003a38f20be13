"""Conversation, tool result and stream event models."""
