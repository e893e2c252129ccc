"""Linode Object Storage driver for the Container Object Storage Interface."""

__version__ = "0.5.0"

DRIVER_NAME = "objectstorage.cosi.linode.com"

__all__ = ["DRIVER_NAME", "__version__"]
