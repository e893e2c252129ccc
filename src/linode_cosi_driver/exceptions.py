"""Linode COSI driver exceptions."""

from __future__ import annotations

import grpc


class DriverError(Exception):
    """Base exception for all driver errors."""


class ConfigError(DriverError):
    """Driver configuration is invalid."""


class PolicyTemplateError(DriverError):
    """Bucket policy template could not be rendered."""


class RPCError(DriverError):
    """COSI call failed with a gRPC status code.

    Args:
        code: gRPC status code returned to the caller
        message: Concise, caller-visible message
    """

    def __init__(self, code: grpc.StatusCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"RPCError(code={self.code.name}, message={self.message!r})"


class InvalidArgumentError(RPCError):
    """Request carried a missing or invalid value."""

    def __init__(self, message: str):
        super().__init__(grpc.StatusCode.INVALID_ARGUMENT, message)


class AlreadyExistsError(RPCError):
    """Resource exists with conflicting parameters."""

    def __init__(self, message: str):
        super().__init__(grpc.StatusCode.ALREADY_EXISTS, message)


class InternalError(RPCError):
    """Any other failure."""

    def __init__(self, message: str):
        super().__init__(grpc.StatusCode.INTERNAL, message)


# Validation errors raised before a status code is assigned
ERR_MISSING_REGION = "region was not provided"
ERR_UNSUPPORTED_AUTH = "unsupported authentication type"
ERR_UNKNOWN_PERMISSIONS = "unknown permissions"
ERR_INVALID_ACCOUNT_ID = "account id is invalid"
