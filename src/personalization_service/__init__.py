"""Eco-Lens personalization and sustainability goal-progress service."""

__version__ = "1.0.0"
