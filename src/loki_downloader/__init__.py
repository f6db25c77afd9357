"""Resumable, batched log downloads from Grafana Loki."""

__version__ = "0.1.0"
