"""
fastpg - Disposable PostgreSQL containers for tests and local development
"""

__version__ = "0.1.0"

from .core import Provisioner, ProvisionError, provision
from .models import ProvisionRequest

__all__ = ["Provisioner", "ProvisionError", "ProvisionRequest", "provision"]
