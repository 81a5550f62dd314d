"""
Database Models

SQLAlchemy ORM models backing the SQL persistence collaborator.

Key Models:
- base.py: Declarative base with the shared column type map
- connections.py: OAuth authorization state and stored social connections
- health.py: In-process health gauge used by readiness probes

Relationships:
- OAuthState: one row per authorization attempt, consumed at most once
- SocialConnection: credentials for one user on one provider; rows are only ever created
  and deleted by rotation, their tokens updated in place by refresh

Token columns hold Fernet ciphertext. The models never see plaintext tokens; the store
encrypts on write and decrypts on the single read path that needs them.
"""
