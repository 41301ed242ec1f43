"""Shared plumbing: config, errors and bus bindings."""
