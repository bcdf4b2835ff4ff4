"""Core reconciliation modules for RyuSync."""

from ryusync.core.archive import ArchiveParseError, list_content_entries
from ryusync.core.discovery import DiscoveryScanner
from ryusync.core.reconciler import RegistryReconciler, deregister_updates_and_dlc, register_updates_and_dlc
from ryusync.core.registry_store import MalformedRegistryError
from ryusync.core.title_id import MissingTitleIdError

__all__ = [
    "ArchiveParseError",
    "DiscoveryScanner",
    "MalformedRegistryError",
    "MissingTitleIdError",
    "RegistryReconciler",
    "deregister_updates_and_dlc",
    "list_content_entries",
    "register_updates_and_dlc",
]
