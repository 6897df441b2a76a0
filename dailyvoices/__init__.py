"""Daily Voices safety core.

Safety-word detection and crisis escalation for journal entries,
AI companion chat messages and community posts.
"""
__version__ = "0.3.0"
