"""Utility modules for the email quality consultant."""

from .config import BrandProfile, ConsultantConfig, Settings, get_settings
from .parsing import extract_json_object

__all__ = [
    "Settings",
    "get_settings",
    "ConsultantConfig",
    "BrandProfile",
    "extract_json_object",
]
