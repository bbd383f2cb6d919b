"""
Site parser plugins for JobLens.

Each plugin knows how to pull a single job posting out of one family of
job-board pages; the generic plugin covers everything else.
"""

from .base import ExtractionPlugin, Step
from .registry import PluginRegistry, get_plugin_registry

__all__ = [
    'ExtractionPlugin',
    'Step',
    'PluginRegistry',
    'get_plugin_registry'
]
