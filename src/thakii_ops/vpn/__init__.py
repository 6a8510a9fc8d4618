"""PIA OpenVPN connection management."""
