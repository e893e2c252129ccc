"""Service clients used by the driver."""
