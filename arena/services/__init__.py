"""
Services package for the competition engine.

Read-side aggregation over a session factory.
"""

from .base import BaseService
from .proficiency_service import ProficiencyService

__all__ = ['BaseService', 'ProficiencyService']
