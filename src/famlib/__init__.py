"""Family Library - Catalog, thumbnails and batch loading for design assets."""

__version__ = "0.1.0"
