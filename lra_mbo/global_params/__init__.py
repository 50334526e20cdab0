"""Global parameters module for lra_mbo.

This module provides access to the global configuration used throughout the project.
"""
from .config import global_config, GlobalConfig
