"""Linode Object Storage models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ...exceptions import ERR_UNKNOWN_PERMISSIONS


class ACL(str, Enum):
    """Canned bucket ACLs accepted by Linode Object Storage."""

    PRIVATE = "private"
    AUTHENTICATED_READ = "authenticated-read"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"

    @classmethod
    def parse(cls, value: str | None) -> ACL:
        """Parse an ACL, defaulting to private when empty.

        Raises:
            ValueError: If the value is not one of the four canned ACLs
        """
        if not value:
            return cls.PRIVATE
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid acl: {value}") from None


class Permissions(str, Enum):
    """Permissions granted to a key on a bucket."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"

    @classmethod
    def parse(cls, value: str | None) -> Permissions:
        """Parse permissions, defaulting to read-only when empty.

        Raises:
            ValueError: If the value is unknown
        """
        if not value:
            return cls.READ_ONLY
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"{ERR_UNKNOWN_PERMISSIONS}: {value}") from None


class CORS(str, Enum):
    """CORS switch as expressed in bucket parameters."""

    ENABLED = "enabled"
    DISABLED = "disabled"

    @classmethod
    def parse(cls, value: str | None) -> CORS:
        # Anything but "enabled" means disabled.
        if value == cls.ENABLED.value:
            return cls.ENABLED
        return cls.DISABLED

    def as_bool(self) -> bool:
        return self is CORS.ENABLED


@dataclass
class Bucket:
    """Object Storage bucket."""

    region: str
    label: str
    hostname: str = ""
    created: str = ""
    objects: int = 0
    size: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Bucket:
        return cls(
            region=data.get("region") or data.get("cluster", ""),
            label=data.get("label", ""),
            hostname=data.get("hostname", ""),
            created=data.get("created", ""),
            objects=int(data.get("objects") or 0),
            size=int(data.get("size") or 0),
        )


@dataclass
class BucketAccess:
    """ACL and CORS settings of a bucket."""

    # Raw provider value, not limited to the canned ACLs
    acl: str = ACL.PRIVATE.value
    cors_enabled: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> BucketAccess:
        return cls(
            acl=data.get("acl", ACL.PRIVATE.value) or "",
            cors_enabled=bool(data.get("cors_enabled", False)),
        )


@dataclass
class BucketAccessEntry:
    """Bucket a limited key may reach."""

    region: str
    bucket_name: str
    permissions: Permissions

    def to_api(self) -> dict[str, str]:
        return {
            "region": self.region,
            "bucket_name": self.bucket_name,
            "permissions": self.permissions.value,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> BucketAccessEntry:
        return cls(
            region=data.get("region") or data.get("cluster", ""),
            bucket_name=data.get("bucket_name", ""),
            permissions=Permissions(data.get("permissions", Permissions.READ_ONLY.value)),
        )


@dataclass
class ObjectStorageKey:
    """Access key pair minted by the provider."""

    id: int
    label: str
    access_key: str
    secret_key: str
    bucket_access: list[BucketAccessEntry] = field(default_factory=list)

    @property
    def limited(self) -> bool:
        """True iff the key is restricted to an explicit bucket list."""
        return len(self.bucket_access) > 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ObjectStorageKey:
        return cls(
            id=int(data["id"]),
            label=data.get("label", ""),
            access_key=data.get("access_key", ""),
            secret_key=data.get("secret_key", ""),
            bucket_access=[BucketAccessEntry.from_api(entry) for entry in data.get("bucket_access") or []],
        )

    def __repr__(self) -> str:
        return f"ObjectStorageKey(id={self.id}, label={self.label!r}, limited={self.limited})"


@dataclass
class ObjectStorageEndpoint:
    """Regional S3 endpoint."""

    region: str
    endpoint_type: str = ""
    s3_endpoint: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ObjectStorageEndpoint:
        return cls(
            region=data.get("region", ""),
            endpoint_type=data.get("endpoint_type", ""),
            s3_endpoint=data.get("s3_endpoint"),
        )
