"""Shared schemas (run input, work item labels)."""

from .input_schema import HarvestInput, StartUrl
from .labels import Label

__all__ = ["HarvestInput", "StartUrl", "Label"]
