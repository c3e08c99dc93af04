"""
voice-chorus: spatial voice personalities that answer while you talk.
"""

__version__ = "0.1.0"
