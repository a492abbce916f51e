"""
connectors — wearable OAuth integration.

Handles:
  • PKCE verifier / challenge and state generation
  • Authorization-URL generation with a server-held pending record
  • Callback handling and code → token exchange
  • Per-user token storage & refresh, Fernet-encrypted at rest
  • Deregistration / disconnect

Each provider is a subclass of BaseConnector; Garmin is the only one.
"""
