"""
OAuth Connection Lifecycle

Provider-agnostic implementation of the OAuth 2.0 authorization code grant with PKCE and of
the lifecycle of the credentials it produces.

Key Components:
- pkce.py: Verifier and S256 challenge generation
- authorize.py: Consent URL composition
- state.py: Single-use state issuing and consumption over a state store
- exchange.py: Token endpoint and identity endpoint requests
- providers.py: Provider variants (X/Twitter, LinkedIn) behind one interface
- refresh.py: Expiry-aware token access with a refresh buffer
- rotate.py: Create-before-delete credential rotation
- manager.py: The public lifecycle operations
- errors.py: Error taxonomy shared by every layer
"""
