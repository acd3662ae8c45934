"""Port implementations that need no database."""
