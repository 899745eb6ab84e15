"""Core HR module — Profile and Team models, schemas and services."""

from attendease.core_hr.models import Profile, Team

__all__ = ["Profile", "Team"]
