"""Pure tunnel logic: serve config model, patching and input validation."""
