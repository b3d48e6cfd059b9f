"""
ffbatch - batch FFmpeg transcoding with VMAF scoring and target-quality CRF search.
"""

__version__ = "1.0.0"

from .config import get_config, load_env_file

__all__ = [
    "get_config",
    "load_env_file",
]
