"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - matching: Provider availability, search and lock ordering
    - pricing: Fare estimation, surge, commission and final fares
    - booking_management: Booking lifecycle (create, transitions, refunds, ratings)
    - dispatch: On-demand rides, response timeouts and trip safety
    - moderation: Point-of-interest duplicate detection and review

Import from the subpackages directly; this package stays import-light because
the models themselves import services.exceptions.
"""
