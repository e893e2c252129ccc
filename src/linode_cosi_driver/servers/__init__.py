"""COSI identity and provisioner servers."""

from .broker import BucketKeyBroker
from .identity import IdentityServer
from .provisioner import ProvisionerServer
from .tokens import TokenResolver
from .utils import format_bucket_id, parse_bucket_id

__all__ = [
    "BucketKeyBroker",
    "IdentityServer",
    "ProvisionerServer",
    "TokenResolver",
    "format_bucket_id",
    "parse_bucket_id",
]
