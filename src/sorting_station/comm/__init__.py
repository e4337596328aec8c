"""
Communication - HTTP access to the controller and the inference API.
"""

from .client import RemoteClient, Transport
from .controller import ControllerAPI
from .inference import InferenceClient

__all__ = ["RemoteClient", "Transport", "ControllerAPI", "InferenceClient"]
