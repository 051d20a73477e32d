# API Module - Local REST interface for the keychain

from .main import app, start_api_server

__all__ = ["app", "start_api_server"]
