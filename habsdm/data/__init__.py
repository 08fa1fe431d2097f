"""
Environmental layer loading.
"""

from .climate import ClimateData, fetch_environmental_layers

__all__ = [
    'ClimateData',
    'fetch_environmental_layers',
]
