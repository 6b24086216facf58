"""
Transcoder Gateway.

FastAPI service that converts audio, GIF, video and image payloads by driving
an external ``ffmpeg`` process.
"""

__version__ = "0.1.0"
