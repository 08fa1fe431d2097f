"""
Occurrence data retrieval, cleaning and pseudo-absence sampling.
"""

from .gbif import search_occurrences
from .cleaning import to_presence_points
from .sampling import presence_mask, sample_pseudo_absences, generate_pseudo_absences
from .points import merge_labelled_points, validate_labelled_points

__all__ = [
    'search_occurrences',
    'to_presence_points',
    'presence_mask',
    'sample_pseudo_absences',
    'generate_pseudo_absences',
    'merge_labelled_points',
    'validate_labelled_points',
]
