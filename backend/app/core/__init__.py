"""
Core package — cross-cutting concerns.

Modules:
    config     — environment variables & settings
    logging    — structured JSON logging
    errors     — exception hierarchy & handlers
    middleware — request logging
    container  — service construction for the app lifespan
"""
