"""COSI request and response messages handled by the driver servers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AuthenticationType(str, Enum):
    """Authentication type requested by a BucketAccess."""

    UNKNOWN = "UnknownAuthenticationType"
    KEY = "Key"
    IAM = "IAM"


class S3SignatureVersion(str, Enum):
    """S3 request signature version."""

    S3V2 = "S3V2"
    S3V4 = "S3V4"


@dataclass(frozen=True)
class S3Protocol:
    region: str
    signature_version: S3SignatureVersion = S3SignatureVersion.S3V4


@dataclass(frozen=True)
class BucketInfo:
    """Protocol information of a provisioned bucket."""

    s3: S3Protocol | None = None


@dataclass(frozen=True)
class CredentialDetails:
    secrets: dict[str, str] = field(default_factory=dict)


@dataclass
class DriverGetInfoRequest:
    pass


@dataclass(frozen=True)
class DriverGetInfoResponse:
    name: str


@dataclass
class DriverCreateBucketRequest:
    name: str
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DriverCreateBucketResponse:
    bucket_id: str
    bucket_info: BucketInfo


@dataclass
class DriverDeleteBucketRequest:
    bucket_id: str
    delete_context: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DriverDeleteBucketResponse:
    pass


@dataclass
class DriverGrantBucketAccessRequest:
    bucket_id: str
    name: str
    authentication_type: AuthenticationType = AuthenticationType.UNKNOWN
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DriverGrantBucketAccessResponse:
    account_id: str
    credentials: dict[str, CredentialDetails] = field(default_factory=dict)


@dataclass
class DriverRevokeBucketAccessRequest:
    bucket_id: str
    account_id: str


@dataclass(frozen=True)
class DriverRevokeBucketAccessResponse:
    pass
