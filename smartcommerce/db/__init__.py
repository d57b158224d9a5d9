"""Database layer: async engine, sessions and ORM models."""
