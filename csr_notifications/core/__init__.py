"""Shared kernel: configuration, errors, logging and domain primitives."""
