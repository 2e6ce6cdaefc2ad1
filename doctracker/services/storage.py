from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.client import Config as BotoConfig

from doctracker.core.config import Settings, settings as default_settings


def resolve_storage_root(config: Settings | None = None) -> Path:
    """
    Returns the directory where uploaded files are kept by the local backend.
    """
    config = config or default_settings
    raw = os.getenv("DOCTRACKER_STORAGE") or config.doctracker_storage or "storage"
    return Path(raw).expanduser().resolve()


class StorageBackend(Protocol):
    def save_bytes(self, *, root: str, name: str, data: bytes, content_type: str | None = None) -> str:  # returns storage path
        ...

    def public_url(self, path: str) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class LocalStorage:
    base_dir: Path
    base_url: str = ""

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def save_bytes(self, *, root: str, name: str, data: bytes, content_type: str | None = None) -> str:  # noqa: ARG002
        target_dir = self.base_dir / root
        target_dir.mkdir(parents=True, exist_ok=True)
        file_path = target_dir / name
        file_path.write_bytes(data)
        return f"{root.strip('/')}/{name}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/files/{path.lstrip('/')}"

    def delete(self, path: str) -> None:
        file_path = (self.base_dir / path).resolve()
        if self.base_dir not in file_path.parents:
            raise ValueError(f"Path {path!r} is outside the storage root")
        file_path.unlink(missing_ok=True)


@dataclass
class S3Storage:
    bucket: str
    client: Any
    public_base_url: str | None = None

    def save_bytes(self, *, root: str, name: str, data: bytes, content_type: str | None = None) -> str:
        key = f"{root.strip('/')}/{name}"
        extra: dict[str, Any] = {}
        if content_type:
            extra["ContentType"] = content_type
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        return key

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{path}"
        endpoint = getattr(self.client.meta, "endpoint_url", "") or ""
        return f"{endpoint.rstrip('/')}/{self.bucket}/{path}"

    def delete(self, path: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=path)


def get_storage(config: Settings | None = None) -> StorageBackend:
    config = config or default_settings

    # An explicit local storage path always wins
    if os.getenv("DOCTRACKER_STORAGE"):
        return LocalStorage(base_dir=resolve_storage_root(config), base_url=config.public_base_url)

    if config.s3_endpoint_url and config.s3_access_key and config.s3_secret_key and config.s3_bucket_documents:
        client = boto3.client(
            "s3",
            endpoint_url=config.s3_endpoint_url,
            aws_access_key_id=config.s3_access_key,
            aws_secret_access_key=config.s3_secret_key,
            config=BotoConfig(signature_version="s3v4"),
            region_name=os.getenv("AWS_REGION", "us-east-1"),
        )
        return S3Storage(
            bucket=config.s3_bucket_documents,
            client=client,
            public_base_url=config.s3_public_base_url,
        )

    return LocalStorage(base_dir=resolve_storage_root(config), base_url=config.public_base_url)
