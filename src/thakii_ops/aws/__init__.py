"""AWS provisioning, deployment and diagnostics for the ECS-hosted service."""
