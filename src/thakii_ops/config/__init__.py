"""
Configuration management for the Thakii ops tooling.

Contains the Pydantic settings for AWS deployment, the local development
stack, and the VPN credentials model.
"""
