from .objects import LocalObjectStore, StorageConfig, UploadError, build_object_path, load_storage_config

__all__ = [
    "LocalObjectStore",
    "StorageConfig",
    "UploadError",
    "build_object_path",
    "load_storage_config",
]
