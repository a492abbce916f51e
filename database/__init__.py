"""
database — ORM models and async session factory for the credential store.
"""
