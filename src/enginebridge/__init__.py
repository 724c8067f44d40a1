"""
engine-bridge - HTTP bridge in front of a single-session execution engine.

Programs submitted over REST are run against the shared engine one at a
time; partial log/output is republished while they run, result files are
harvested into per-job folders, and a marker protocol turns engine log text
into tabular dataset previews.

Layout:
    core/         errors, structured logging, settings, timestamps
    execution/    job registry, execution gate, worker, capture, artifacts
    engines/      engine and metadata protocols plus shipped adapters
    services/     dataset preview and dataset export
    api/          FastAPI application factory, routers, envelopes
    cli/          ``engine-bridge`` Typer application
"""

__version__ = "0.2.0"
