"""Adapters for the external source store and destination upload service."""

from partcopy.clients.destination import UploadServiceClient
from partcopy.clients.source import S3Source

__all__ = ["S3Source", "UploadServiceClient"]
