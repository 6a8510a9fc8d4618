"""Local development stack: ports, health checks and managed processes."""
