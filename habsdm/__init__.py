"""
Habitat suitability modelling: GBIF occurrences, WorldClim layers and MaxEnt.
"""

__version__ = "0.1.0"
