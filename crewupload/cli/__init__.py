"""CLI package for crewupload."""
