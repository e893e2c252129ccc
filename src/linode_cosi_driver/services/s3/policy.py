"""Bucket policy templates and validation."""

from __future__ import annotations

import json
import re
from typing import Any

from ...exceptions import PolicyTemplateError

_ACTION_RE = re.compile(r"\{\{-?\s*(.*?)\s*-?\}\}", re.DOTALL)


def render_policy_template(template: str, bucket_name: str) -> str:
    """Render a bucket policy template.

    The only supported action is ``{{ .BucketName }}``, replaced with the
    bucket label.

    Raises:
        PolicyTemplateError: If the template uses anything else
    """

    def substitute(match: re.Match[str]) -> str:
        action = match.group(1)
        if action == ".BucketName":
            return bucket_name
        raise PolicyTemplateError(f"failed to execute policy template: unsupported action {{{{{action}}}}}")

    rendered = _ACTION_RE.sub(substitute, template)
    if "{{" in rendered:
        raise PolicyTemplateError("failed to parse policy: unclosed action")
    return rendered


def _is_string_or_list(value: Any) -> bool:
    if isinstance(value, str):
        return value != ""
    if isinstance(value, list):
        return len(value) > 0 and all(isinstance(item, str) for item in value)
    return False


def _is_valid_principal(value: Any) -> bool:
    if isinstance(value, str):
        return value != ""
    if isinstance(value, dict):
        return len(value) > 0 and all(_is_string_or_list(item) for item in value.values())
    if isinstance(value, list):
        return _is_string_or_list(value)
    return False


def validate_policy(policy: str) -> bool:
    """Check that a policy looks like an AWS bucket policy.

    An empty policy is valid. Otherwise the document needs a ``Version`` and
    a non-empty ``Statement`` list whose entries carry ``Effect``, ``Action``,
    ``Resource`` and ``Principal``.
    """
    if not policy:
        return True

    try:
        doc = json.loads(policy)
    except ValueError:
        return False

    if not isinstance(doc, dict):
        return False

    statements = doc.get("Statement")
    if not doc.get("Version") or not isinstance(statements, list) or not statements:
        return False

    for stmt in statements:
        if not isinstance(stmt, dict) or not stmt.get("Effect"):
            return False
        if not _is_string_or_list(stmt.get("Action")) or not _is_string_or_list(stmt.get("Resource")):
            return False
        if not _is_valid_principal(stmt.get("Principal")):
            return False

    return True
