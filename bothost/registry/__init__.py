"""Durable records — bots, tenants and one-time login codes."""
