"""Shared helpers: logging, directories, process lock."""
