"""
Storage Module

Local blob store and user file management.
"""
from src.gridrisk.storage.blob import LocalBlobStore
from src.gridrisk.storage.files import FileService

__all__ = ["LocalBlobStore", "FileService"]
