"""
auth — caller authentication against the managed backend.

Provides:
  • ``BackendIdentity`` — bearer-token resolution and admin user lookup
  • ``get_current_user_id`` / ``db_session`` FastAPI dependencies
"""
