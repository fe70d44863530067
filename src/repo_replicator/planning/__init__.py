"""Directive loading, naming and task expansion."""
