"""Service test scaffolding with a bounded compile/run/repair validation loop."""

__version__ = "0.1.0"
