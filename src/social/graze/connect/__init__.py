"""
Graze Connect - OAuth Connection Lifecycle Manager

This module implements the service that authorizes and maintains third-party publishing
credentials, such as a social network account used to cross-post blog content. It owns the
OAuth 2.0 authorization code flow with PKCE, the single-use CSRF state that binds a consent to
the user that requested it, expiry-aware token refresh, and crash-safe credential rotation.

Key Components:
- app: Web application layer with request handlers and server configuration
- oauth: Provider-agnostic OAuth flow, token refresh and connection rotation
- model: Database models for authorization state and social connections
- store: Persistence collaborators (SQL and Redis) used by the OAuth layer

Architecture Overview:
1. Authorization Flow:
   - A user asks to connect a provider; a PKCE pair and a state token are generated
   - The state record is stored before the consent URL is handed out
   - The provider redirects back; the state is consumed exactly once and the code is exchanged

2. Token Use:
   - Publishing services ask for a token for a user and provider
   - Tokens close to expiry are refreshed before they are handed out
   - Nothing is cached in process memory; every lookup reads the store

3. Rotation:
   - Re-authorizing creates the new connection before the old one is deleted
   - A crash between the two steps leaves a duplicate, never zero connections
"""
