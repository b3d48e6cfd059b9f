"""Configuration management for ffbatch."""

import os
from pathlib import Path
from typing import Optional, Dict, Any

from .core.modules.system.system_utils import find_command


def load_env_file(env_path: Optional[Path] = None) -> Dict[str, str]:
    """Load environment variables from .env file."""
    if env_path is None:
        # Look for .env in current directory, then in package directory
        candidates = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for candidate in candidates:
            if candidate.exists():
                env_path = candidate
                break

    env_vars = {}

    if env_path and env_path.exists():
        with open(env_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    env_vars[key.strip()] = value.strip().strip('"\'')

    return env_vars


def _setting(env_vars: Dict[str, str], key: str, default: Optional[str] = None) -> Optional[str]:
    """A .env key wins over the process environment; keys match case-insensitively."""
    for name in (key.lower(), key.upper()):
        if name in env_vars:
            return env_vars[name]
    return os.getenv(key.upper(), default)


def get_config(env_path: Optional[Path] = None) -> Dict[str, Any]:
    """Get configuration from environment variables and .env file."""
    env_vars = load_env_file(env_path)

    config = {
        'ffmpeg_path': _setting(env_vars, 'ffmpeg_path') or find_command('ffmpeg') or 'ffmpeg',
        'ffprobe_path': _setting(env_vars, 'ffprobe_path') or find_command('ffprobe') or 'ffprobe',
        'vmaf_target': float(_setting(env_vars, 'vmaf_target', '95.0')),
        'vmaf_threads': int(_setting(env_vars, 'vmaf_threads', str(min(8, os.cpu_count() or 8)))),
        'vmaf_model': _setting(env_vars, 'vmaf_model', 'vmaf_v0.6.1'),
        'concurrency': int(_setting(env_vars, 'concurrency', '1')),
        'temp_dir': _setting(env_vars, 'temp_dir'),
        'debug': _setting(env_vars, 'debug', 'false').lower() in ('true', '1', 'yes'),
        'log_level': _setting(env_vars, 'log_level', 'INFO').upper(),
    }

    return config
