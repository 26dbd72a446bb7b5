"""Plugin discovery, loading, and registry binding.

Discovery: entry points in the ``metaforge.plugins`` group via pluggy's
setuptools loader, plus plugins registered directly. The CLI binds a manager
to every registry it loads; applications building a DataStore call
:meth:`PluginManager.bind_registry` on their registry themselves.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

import pluggy

from metaforge.plugins.hookspecs import MetaforgeHookSpec

if TYPE_CHECKING:
    from metaforge.registry.store import MetadataRegistry, RegistryEntry

PROJECT_NAME = "metaforge"
ENTRY_POINT_GROUP = "metaforge.plugins"

logger = logging.getLogger(__name__)


class PluginManager:
    """Manages plugin loading and forwards registry changes to hooks."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(MetaforgeHookSpec)

    def discover_and_load(self) -> list[str]:
        """Load entry-point plugins. Returns the names of all registered plugins."""
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._normalize_plugin_instances()
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def get_plugins(self) -> list[object]:
        return list(self._pm.get_plugins())

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    # ------------------------------------------------------------------
    # Registry binding
    # ------------------------------------------------------------------

    def bind_registry(self, registry: MetadataRegistry) -> Callable[[], None]:
        """Declare plugin types on *registry* and forward its changes.

        Returns a callable that stops forwarding.
        """
        try:
            contributed = self._pm.hook.register_metadata_types()
        except Exception:
            logger.warning("Failed to collect metadata types from plugins", exc_info=True)
            contributed = []

        for configs in contributed:
            for config in configs or ():
                registry.register_type(config)

        def _forward(
            event: str, type_name: str, name: str, entry: RegistryEntry | None
        ) -> None:
            try:
                self._pm.hook.metadata_changed(event=event, type_name=type_name, name=name)
            except Exception:
                logger.warning("Plugin hook metadata_changed failed for %s", name, exc_info=True)

        return registry.add_listener(_forward)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _normalize_plugin_instances(self) -> None:
        """Replace registered plugin classes with instances.

        Entry-point loading may register a class object; hook dispatch
        against it would leave ``self`` unbound.
        """
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin) or not self._has_hook_impls(plugin):
                continue

            plugin_name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning(
                    "Failed to instantiate entry-point plugin %s", plugin_name, exc_info=True
                )
                continue
            self._pm.register(instance, name=plugin_name)
            logger.debug("Instantiated entry-point plugin: %s", plugin_name)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """Whether *cls* has methods marked by ``@hookimpl`` (``metaforge_impl``)."""
        for name in dir(cls):
            if name.startswith("_"):
                continue
            method = getattr(cls, name, None)
            if callable(method) and getattr(method, "metaforge_impl", None):
                return True
        return False
