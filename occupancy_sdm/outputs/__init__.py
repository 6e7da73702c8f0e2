"""
Output writers: prediction rasters and figures.
"""
