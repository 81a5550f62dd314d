"""
Connect Application Layer

The aiohttp web application that exposes the connection lifecycle over HTTP.

Key Components:
- server.py: Application factory, resource lifecycle and middleware
- config.py: Settings and typed AppKeys for dependency injection
- handlers/: Request handlers for the internal API, provider callbacks and health probes
- tasks.py: Background tasks for health decay and OAuth state cleanup
- metrics.py: Metrics client abstraction
- cli.py: Process entry point and logging setup

Middleware:
- Statsd middleware for request counts, timings and exceptions
- Sentry middleware for error reporting
"""
