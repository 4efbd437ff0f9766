"""
Whisper Walls - Geotagged anonymous whispers

A Flask-based service for dropping short anonymous messages at a place and
discovering them by walking close enough, with optional accounts.
"""

__version__ = "1.0.0"
__author__ = "Whisper Walls Team"
__description__ = "Proximity-gated anonymous whispers with optional accounts"
