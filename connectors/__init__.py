"""Backend access: HTTP client and cached reads."""
