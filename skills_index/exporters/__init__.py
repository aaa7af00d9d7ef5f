"""Exporters for skill scan and update results."""

from .json_exporter import JSONExporter

__all__ = ["JSONExporter"]
