"""
Plots of model outputs.
"""

from .model_evaluation import plot_roc_curve, plot_suitability_map

__all__ = [
    'plot_roc_curve',
    'plot_suitability_map',
]
