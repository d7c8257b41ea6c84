"""
Mapping Pipeline Module
Geospatial frame normalization for vector lane maps and point clouds
"""
