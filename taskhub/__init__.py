"""Task management service with REST and gRPC front ends."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings, resolve_config_path

__version__ = "1.0.0"


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the REST application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


def create_grpc_server(*args: Any, **kwargs: Any):
    """Factory function for the gRPC server."""

    from .rpc import GrpcServer

    return GrpcServer(*args, **kwargs)


__all__ = [
    "Settings",
    "__version__",
    "create_app",
    "create_grpc_server",
    "load_settings",
    "resolve_config_path",
]
