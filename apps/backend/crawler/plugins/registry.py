"""
Plugin registry for managing extraction plugins.
"""
import logging
from typing import List, Dict, Optional
from .base import ExtractionPlugin

logger = logging.getLogger(__name__)

# Global registry instance
_registry: Optional['PluginRegistry'] = None


class PluginRegistry:
    """Registry of site parsers, consulted in priority order"""

    def __init__(self, fallback: Optional[ExtractionPlugin] = None):
        self._plugins: List[ExtractionPlugin] = []
        self._plugins_by_name: Dict[str, ExtractionPlugin] = {}
        self._fallback = fallback

    def register(self, plugin: ExtractionPlugin):
        """Register a plugin"""
        if plugin.name in self._plugins_by_name:
            logger.warning(f"Plugin {plugin.name} already registered, replacing")
            self._plugins = [p for p in self._plugins if p.name != plugin.name]

        self._plugins_by_name[plugin.name] = plugin
        self._plugins.append(plugin)

        # Sort by priority (higher first)
        self._plugins.sort(key=lambda p: p.priority, reverse=True)

        logger.debug(f"Registered plugin: {plugin.name} (priority={plugin.priority})")

    def set_fallback(self, plugin: ExtractionPlugin):
        self._fallback = plugin
        self._plugins_by_name[plugin.name] = plugin

    def get_plugin(self, name: str) -> Optional[ExtractionPlugin]:
        """Get plugin by name"""
        return self._plugins_by_name.get(name)

    def find_plugin(self, url: str) -> ExtractionPlugin:
        """
        Find the plugin for a URL.

        Site plugins are tried in priority order; the fallback plugin handles
        everything else.
        """
        for plugin in self._plugins:
            if plugin.can_handle(url):
                logger.debug(f"Selected plugin: {plugin.name} for {url[:80]}")
                return plugin

        if self._fallback is None:
            raise LookupError(f"No plugin found for {url[:80]} and no fallback registered")
        return self._fallback

    def list_plugins(self) -> List[Dict]:
        """List all registered plugins"""
        plugins = list(self._plugins)
        if self._fallback is not None:
            plugins.append(self._fallback)
        return [
            {
                'name': plugin.name,
                'priority': plugin.priority,
                'domains': list(plugin.domains),
                'class': plugin.__class__.__name__
            }
            for plugin in plugins
        ]


def get_plugin_registry() -> PluginRegistry:
    """Get or create the global plugin registry"""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
        # Auto-register built-in plugins
        _register_builtin_plugins(_registry)
    return _registry


def _register_builtin_plugins(registry: PluginRegistry):
    """Register all built-in plugins"""
    from .linkedin import LinkedInPlugin
    from .indeed import IndeedPlugin
    from .wellfound import WellfoundPlugin
    from .grabjobs import GrabJobsPlugin
    from .lever import LeverPlugin
    from .generic import GenericPlugin

    registry.register(LinkedInPlugin())
    registry.register(IndeedPlugin())
    registry.register(WellfoundPlugin())
    registry.register(GrabJobsPlugin())
    registry.register(LeverPlugin())
    registry.set_fallback(GenericPlugin())
