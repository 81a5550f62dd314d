"""
Persistence collaborators.

The OAuth core only depends on the abstract interfaces in ``base``. Concrete stores:

- database.py: SQLAlchemy over PostgreSQL for connections and OAuth state, tokens encrypted
  with Fernet
- redis_state.py: OAuth state in Redis, consumed with an optimistic transaction

Which state store is used is chosen by the ``state_backend`` setting; connections always live
in the database.
"""
