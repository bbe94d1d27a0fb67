"""Terraform-style provisioning for CircleCI."""

__version__ = "0.1.0"
