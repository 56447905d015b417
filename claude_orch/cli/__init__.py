"""Command line interface for Claude Orch."""
