"""
storesmoke - End-to-end smoke tests for the MVC Music Store storefront
"""

__version__ = "0.1.0"

from .core import SmokeTestRunner
from .errors import SmokeTestError

__all__ = ["SmokeTestRunner", "SmokeTestError"]
