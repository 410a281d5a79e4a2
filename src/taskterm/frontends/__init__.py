"""Frontends - user-facing interfaces over the transports."""
