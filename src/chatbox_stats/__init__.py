"""chatbox-stats - system stats broadcaster for OSC chatbox overlays."""

__version__ = "0.1.0"
