"""Projection engine: path access, growth patterns, aggregation and metrics."""
