"""Deployment, local-stack and VPN tooling for the Thakii Lecture2PDF service."""

__version__ = "0.1.0"
