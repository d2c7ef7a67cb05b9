"""Storage backend discovery via Python entry points."""

from importlib import import_module
from importlib.metadata import entry_points
from typing import Any

from dataset_viewer.exceptions import ProtocolNotSupportedError
from dataset_viewer.protocols import StorageBackend

BACKEND_GROUP = "dataset_viewer.backends.storage"

# Protocol names understood without any plugin installed
BUILTIN_BACKENDS = {
    "local": "dataset_viewer.backends.storage.local:LocalStorageBackend",
    "file": "dataset_viewer.backends.storage.local:LocalStorageBackend",
    "memory": "dataset_viewer.backends.storage.memory:MemoryStorageBackend",
    "s3": "dataset_viewer.backends.storage.s3:S3StorageBackend",
    "oss": "dataset_viewer.backends.storage.s3:S3StorageBackend",
    "webdav": "dataset_viewer.backends.storage.webdav:WebDAVStorageBackend",
    "webdavs": "dataset_viewer.backends.storage.webdav:WebDAVStorageBackend",
    "huggingface": "dataset_viewer.backends.storage.huggingface:HuggingFaceStorageBackend",
}

# Recognised protocol names that need a plugin to be usable
PLUGIN_ONLY_PROTOCOLS = ("ssh", "sftp", "smb", "cifs")


def _load(target: str) -> Any:
    module_name, _, attr = target.partition(":")
    return getattr(import_module(module_name), attr)


def available_protocols() -> list[str]:
    """All protocol names that currently resolve to a backend class."""
    names = set(BUILTIN_BACKENDS)
    names.update(ep.name for ep in entry_points(group=BACKEND_GROUP))
    return sorted(names)


def get_backend_class(protocol: str) -> Any:
    """Get the backend class for a protocol name.

    Entry points take precedence over the built-in table, so an installed
    plugin can replace a built-in backend.

    Raises:
        ProtocolNotSupportedError: If no backend handles the protocol
    """
    for ep in entry_points(group=BACKEND_GROUP):
        if ep.name == protocol:
            return ep.load()
    if protocol in BUILTIN_BACKENDS:
        return _load(BUILTIN_BACKENDS[protocol])
    raise ProtocolNotSupportedError(protocol)


def create_storage_backend(protocol: str, **kwargs: Any) -> StorageBackend:
    """Create an unconnected StorageBackend instance.

    Args:
        protocol: The protocol name (e.g., "local", "s3", "webdav")
        **kwargs: Backend-specific constructor arguments

    Returns:
        A StorageBackend implementation
    """
    cls = get_backend_class(protocol)
    return cls(**kwargs)
