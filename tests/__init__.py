"""
Test package for ffbatch.

External tools are never run: tests patch the process and probe seams with
the helpers in ``tests.fakes``.
"""
