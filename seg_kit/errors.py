"""
Error taxonomy for the postprocessing pipeline.

- ConfigurationError: bad ModelLayout / thresholds. Raised before any decode work.
- DecodeError: malformed or short output buffer. Fatal for one frame only.
- PerDetectionMaskError: compositing one instance mask failed. Recovered locally.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    pass


class DecodeError(ValueError):
    pass


class PerDetectionMaskError(RuntimeError):
    def __init__(self, index: int, cause: BaseException):
        super().__init__(f"Mask compositing failed for detection #{index}: {cause}")
        self.index = index
        self.cause = cause
