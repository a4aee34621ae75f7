"""
Core place selection and road network generation.
"""

from .geometry import Coordinates, LineSegment, distance, intersection, is_same
from .bounds import Bounds, Mesh, mesh_from_options
from .xorshift_prng import XorShiftPRNG
from .places import Place, PlaceCategory, load_places
from .network import Path, PathNetwork, create_network, create_paths_from_network
from .generation import GenerationOptions, GenerationResult, generate

__all__ = ['Coordinates', 'LineSegment', 'distance', 'intersection', 'is_same',
           'Bounds', 'Mesh', 'mesh_from_options', 'XorShiftPRNG',
           'Place', 'PlaceCategory', 'load_places',
           'Path', 'PathNetwork', 'create_network', 'create_paths_from_network',
           'GenerationOptions', 'GenerationResult', 'generate']
