"""Turbine — asynchronous package manager with lazy, trigger-driven activation.

Packages are git repositories fetched into ``<root>/plugins/<name>``.
Turbine installs and updates them through a bounded-concurrency job
scheduler, remembers their specs and revisions in a TTL cache, and makes
their code live only when one of their triggers (event, command, filetype
or key) first fires.

Layers (bottom to top):
    1. Storage / Cache  — byte store, JSON TTL cache with lazy expiry
    2. Jobs             — subprocess runner, FIFO scheduler, git commands
    3. Packages         — PackageSpec normalisation, registry, install/update
    4. Activation       — trigger dispatcher, host runtime, activation engine
    5. Manager / CLI    — configure() facade, typer command line
"""

__version__ = "0.1.0"

from turbine.exceptions import ConfigurationError, TurbineError
from turbine.manager import Turbine, configure

__all__ = [
    "__version__",
    "ConfigurationError",
    "Turbine",
    "TurbineError",
    "configure",
]
