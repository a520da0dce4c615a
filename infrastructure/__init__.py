# ============================================================================
# MODULE CONTEXT - INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Core Infrastructure - Database connection management
# EXPORTS: PostgreSQLRepository
# DEPENDENCIES: psycopg, config
# ============================================================================

"""
Infrastructure Module

Shared PostgreSQL connection management for the point subset package and
health checks.
"""

from .postgresql import PostgreSQLRepository

__all__ = [
    "PostgreSQLRepository"
]
