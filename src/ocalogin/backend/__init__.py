"""Backend interfaces and their HTTP implementation."""

from ocalogin.backend.base import AuthStatusStream, ConfigurationStore, RpcClient
from ocalogin.backend.client import BackendClient

__all__ = ["AuthStatusStream", "BackendClient", "ConfigurationStore", "RpcClient"]
