"""Configuration module for the administration backend."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
