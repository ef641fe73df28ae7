"""Workflow step definitions."""

from . import campaign, data_pipeline, maintenance

__all__ = ["campaign", "data_pipeline", "maintenance"]
