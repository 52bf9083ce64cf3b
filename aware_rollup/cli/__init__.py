"""Command-line entry points for aware-rollup."""
