"""Service layer for the Parley application."""
