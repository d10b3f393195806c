"""SpeechPace - live speech transcription with speaking-rate analysis."""

__version__ = "0.1.0"
