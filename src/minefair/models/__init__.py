"""Core data models for Minefair."""
