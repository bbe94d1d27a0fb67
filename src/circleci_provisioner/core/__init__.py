"""Core infrastructure components for CircleCI Provisioner."""
