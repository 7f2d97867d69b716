"""Tunnel backends."""
