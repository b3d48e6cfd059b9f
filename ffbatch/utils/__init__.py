"""Shared utilities for ffbatch."""
