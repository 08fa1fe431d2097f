# habsdm/raster/__init__.py
# Raster stack helpers: grid indexing, clipping and GeoTIFF io.

from .grid import points_to_cells, cells_to_points, stack_valid_mask, reference_layer
from .clip import study_area_hull, clip_stack
from .io import read_stack, write_stack, stack_from_layers

__all__ = [
    "points_to_cells",
    "cells_to_points",
    "stack_valid_mask",
    "reference_layer",
    "study_area_hull",
    "clip_stack",
    "read_stack",
    "write_stack",
    "stack_from_layers",
]
