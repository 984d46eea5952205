"""Automatic analytics: sentiment, relationships, patterns, alerts and insights."""
