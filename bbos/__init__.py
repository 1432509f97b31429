"""
BBoS data collection service
"""
__version__ = "1.0.0"
