"""Builders for bucket and bucket access configurations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from ..constants import PARAM_ACL, PARAM_CLEANUP, PARAM_CORS, PARAM_PERMISSIONS, PARAM_POLICY, PARAM_REGION
from ..exceptions import ERR_MISSING_REGION
from ..services.linode.models import ACL, CORS, Permissions
from ..services.s3.policy import render_policy_template

CLEANUP_FORCE = "force"


@dataclass(frozen=True)
class BucketConfig:
    """Desired state of a bucket."""

    label: str
    region: str
    acl: ACL
    cors: CORS
    policy: str = ""

    @property
    def cors_enabled(self) -> bool:
        return self.cors.as_bool()


@dataclass(frozen=True)
class AccessConfig:
    """Desired state of a bucket access key."""

    permissions: Permissions


def create_bucket_config_from_parameters(label: str, parameters: Mapping[str, str] | None) -> BucketConfig:
    """Create a bucket configuration from BucketClass parameters.

    Args:
        label: Bucket label (the COSI bucket name)
        parameters: Request parameters

    Returns:
        Bucket configuration with defaults applied and the policy rendered

    Raises:
        ValueError: If the region is missing or the ACL is invalid
        PolicyTemplateError: If the policy template cannot be rendered
    """
    parameters = parameters or {}

    region = parameters.get(PARAM_REGION, "")
    if not region:
        raise ValueError(ERR_MISSING_REGION)

    acl = ACL.parse(parameters.get(PARAM_ACL))
    cors = CORS.parse(parameters.get(PARAM_CORS))

    policy = ""
    template = parameters.get(PARAM_POLICY, "")
    if template:
        policy = render_policy_template(template, label)

    return BucketConfig(label=label, region=region, acl=acl, cors=cors, policy=policy)


def create_access_config_from_parameters(parameters: Mapping[str, str] | None) -> AccessConfig:
    """Create a bucket access configuration from BucketAccessClass parameters.

    Raises:
        ValueError: If the permissions value is unknown
    """
    parameters = parameters or {}
    return AccessConfig(permissions=Permissions.parse(parameters.get(PARAM_PERMISSIONS)))


def force_cleanup_requested(parameters: Mapping[str, str] | None) -> bool:
    """Check whether a delete asks for the bucket to be emptied first."""
    return (parameters or {}).get(PARAM_CLEANUP, "") == CLEANUP_FORCE
