"""Daily Voices services.

- Safety Service: lexical trigger detection and the crisis-resource modal
- Audit Service: flagged-entry records for later review
"""
