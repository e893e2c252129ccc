"""COSI identity server."""

from __future__ import annotations

from ..constants import METHOD_GET_INFO
from .base import BaseServer
from .messages import DriverGetInfoRequest, DriverGetInfoResponse


class IdentityServer(BaseServer):
    """Reports the driver name.

    Raises:
        ValueError: If ``driver_name`` is empty
    """

    def __init__(self, driver_name: str):
        super().__init__("identity")
        if not driver_name:
            raise ValueError("driver name must not be empty")
        self.driver_name = driver_name

    def driver_get_info(self, request: DriverGetInfoRequest) -> DriverGetInfoResponse:
        return self.call_with_metrics(
            METHOD_GET_INFO,
            self.driver_name,
            lambda: DriverGetInfoResponse(name=self.driver_name),
        )
