"""Pluggy hook specifications for registry events and setup extensions.

One event hook mirrors registry change notifications. One setup-time hook
lets plugins contribute custom (optionally derived) type categories.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from metaforge.registry.store import TypeConfig

hookspec = pluggy.HookspecMarker("metaforge")
hookimpl = pluggy.HookimplMarker("metaforge")


class MetaforgeHookSpec:
    """Hook specifications for the metaforge plugin system."""

    @hookspec
    def metadata_changed(self, event: str, type_name: str, name: str) -> None:
        """Called synchronously after a registry add, update, or remove."""

    @hookspec
    def register_metadata_types(self) -> list[TypeConfig] | None:
        """Return custom type categories to declare on the bound registry."""
