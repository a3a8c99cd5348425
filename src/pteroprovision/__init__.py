"""
pteroprovision - Pterodactyl panel and Wings installer for Ubuntu 22.04
"""

__version__ = "0.1.0"

from .core import PanelProvisioner
from .errors import ProvisionError
from .models import InstallRequest, ProvisionSettings

__all__ = ["InstallRequest", "PanelProvisioner", "ProvisionError", "ProvisionSettings"]
