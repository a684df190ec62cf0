"""voxtap: native audio capture supervisor for voice dictation."""

__version__ = "0.1.0"
