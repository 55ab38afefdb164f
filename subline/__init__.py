"""
Subline - resilient subtitle token generation.

Turns a YouTube URL or a local audio file into a validated, time-aligned
sequence of subtitle tokens through a three-stage pipeline: audio
extraction (yt-dlp with strategy fallback) → transcription (Whisper with
jittered retry) → output validation.
"""

__version__ = "0.1.0"
