"""Utilities for reading Kubernetes secrets."""

from __future__ import annotations

import base64
import binascii

from kubernetes import client


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
    timeout: float | None = None,
) -> str:
    """Get a value from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key in the secret
        timeout: Request timeout in seconds, none when unset

    Returns:
        Secret value, stripped of surrounding whitespace

    Raises:
        ValueError: If secret or key not found, or the value is empty
    """
    try:
        if timeout is None:
            secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
        else:
            secret = api.read_namespaced_secret(name=secret_name, namespace=namespace, _request_timeout=timeout)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise

    data = secret.data or {}
    if key not in data:
        raise ValueError(f"Secret '{namespace}/{secret_name}' missing {key}")

    value = data[key]
    # Handle both string and bytes (different versions of kubernetes client)
    if isinstance(value, str):
        try:
            decoded = base64.b64decode(value, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            decoded = value
    else:
        decoded = value.decode("utf-8")

    decoded = decoded.strip()
    if not decoded:
        raise ValueError(f"Secret '{namespace}/{secret_name}' missing {key}")
    return decoded
