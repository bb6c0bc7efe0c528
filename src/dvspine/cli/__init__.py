"""dvspine command-line interface (typer)."""
