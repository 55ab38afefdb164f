"""Whisper transcription with bounded, jittered retry."""
