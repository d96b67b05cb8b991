"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON / coloured logging
    errors          — exception hierarchy & handlers
    middleware      — request logging & correlation ids
    security        — bearer-token authentication
    health          — health check aggregation
    database        — async SQLAlchemy engine & sessions
"""
