"""
Input loaders.
"""

from .csv_loader import load_dataframe, parse_uri, detect_delimiter, detect_encoding

__all__ = [
    'load_dataframe',
    'parse_uri',
    'detect_delimiter',
    'detect_encoding',
]
