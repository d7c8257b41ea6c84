"""
Projection Module
Handles coordinate transformations and UTM zone resolution
"""
from .transformer import ProjectionAdapter
from .utm_manager import UTMManager

__all__ = ["ProjectionAdapter", "UTMManager"]
