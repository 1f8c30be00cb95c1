"""backforge-cli: Command-line interface for backforge."""
