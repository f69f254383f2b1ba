"""
Utility functions for Generation Studio.
"""

from .prompt_builder import compose_prompt, parse_prompt_variants, sanitize_prompt
from .polling import BackoffPolicy, PollJob, PollStateMachine, PollStatus
from .export import build_download_filename, build_manifest, sanitize_filename
from .config import StudioConfig, load_config, validate_api_token
from .logging_setup import setup_logging
from .background import BackgroundLoop

__all__ = [
    'compose_prompt',
    'parse_prompt_variants',
    'sanitize_prompt',
    'BackoffPolicy',
    'PollJob',
    'PollStateMachine',
    'PollStatus',
    'build_download_filename',
    'build_manifest',
    'sanitize_filename',
    'StudioConfig',
    'load_config',
    'validate_api_token',
    'setup_logging',
    'BackgroundLoop'
]
