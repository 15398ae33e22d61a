"""
Storage Services Package

Provides the abstract storage interface and its two backends:
Firebase Realtime Database for signed-in users, a local JSON file for guests.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    BusinessStorageInterface,
    Collection,
    ConnectionError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    business_from_document,
    businesses_from_document,
    child_path,
)
from src.services.storage.firebase import FirebaseBusinessStorage
from src.services.storage.local import LocalAuditStorage, LocalBusinessStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BusinessStorageInterface",
    "Collection",
    # Helpers
    "business_from_document",
    "businesses_from_document",
    "child_path",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    # Implementations
    "FirebaseBusinessStorage",
    "LocalAuditStorage",
    "LocalBusinessStorage",
]
