"""
Protokoll: context resolution and routing for transcribed audio notes.
"""

__version__ = "0.1.0"
