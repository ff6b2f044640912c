"""Build, scan, push and deploy the static site container."""

__version__ = "0.1.0"
