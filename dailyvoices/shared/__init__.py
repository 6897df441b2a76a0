"""Shared models, errors and utilities for Daily Voices services."""
