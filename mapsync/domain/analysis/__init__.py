"""Field analysis feeding bookmark generation."""

from mapsync.domain.analysis.field_analyzer import FieldAnalyzer, suggested_config

__all__ = ["FieldAnalyzer", "suggested_config"]
