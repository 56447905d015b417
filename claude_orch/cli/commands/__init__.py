"""CLI commands for Claude Orch."""
