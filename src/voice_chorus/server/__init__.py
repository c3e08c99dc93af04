"""
HTTP server exposing transcription, reply generation and synthesis.
"""

from voice_chorus.server.app import create_app

__all__ = ["create_app"]
