"""Subcommands for funnelctl CLI."""
