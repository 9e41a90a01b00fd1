"""
Echo Companion: a compassionate conversational companion with a chat API,
bounded per-session memory and a voice-first turn-taking client.
"""

__version__ = "0.1.0"
