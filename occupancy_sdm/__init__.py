"""Hierarchical (ZIB) species distribution modelling from checklist data."""
