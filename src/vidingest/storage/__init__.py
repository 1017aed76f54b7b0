"""Blob storage access for the ingest pipeline."""

from .storage_client import HttpBlobStorageClient, StorageClient
from .storage_models import BlobDestination, SourceBlob

__all__ = ["BlobDestination", "HttpBlobStorageClient", "SourceBlob", "StorageClient"]
