"""Core building blocks: command execution, backend session, settings, logging."""
