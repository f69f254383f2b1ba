"""
API module for the generation provider integration.
"""

from .error_handler import (
    StudioAPIError,
    AuthenticationError,
    RateLimitError,
    TransientAPIError,
    ResponseFormatError,
    PreflightValidationError,
    InvalidTransitionError,
    RetryConfig,
    handle_api_response,
    describe_error
)
from .adapter import GenerationOutcome, StatusReport
from .client import GenerationAPI
from .gateway import ProviderGateway

__all__ = [
    'GenerationAPI',
    'ProviderGateway',
    'GenerationOutcome',
    'StatusReport',
    'StudioAPIError',
    'AuthenticationError',
    'RateLimitError',
    'TransientAPIError',
    'ResponseFormatError',
    'PreflightValidationError',
    'InvalidTransitionError',
    'RetryConfig',
    'handle_api_response',
    'describe_error'
]
