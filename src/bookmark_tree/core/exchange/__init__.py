"""Export/import record handling."""
