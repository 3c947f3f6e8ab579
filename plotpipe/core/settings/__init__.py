"""Configuration for plotpipe."""

from .renderer_settings import RendererSettings, to_bool

__all__ = ['RendererSettings', 'to_bool']
