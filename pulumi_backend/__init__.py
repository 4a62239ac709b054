"""Pulumi backend management: migrate stacks between Pulumi Cloud and S3."""

__version__ = "1.0.0"
