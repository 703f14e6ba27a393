"""
mosaic2d - 2D image mosaics from overlapping photograph sequences
"""

__version__ = "0.2.0"
