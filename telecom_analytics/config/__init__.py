"""
Telecom Analytics Platform
Configuration Module
"""
from .settings import Settings, PipelineSettings, get_settings

__all__ = ["Settings", "PipelineSettings", "get_settings"]
