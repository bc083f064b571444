"""Flowstate: synchronized threat model editing (entity graph, diagram, YAML text)."""

__version__ = "0.1.0"
