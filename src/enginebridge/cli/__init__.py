"""``engine-bridge`` command-line interface (Typer)."""
