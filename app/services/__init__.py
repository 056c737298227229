"""
Services module for the event sync engine.

This module organizes services into:
- clients: External event data source clients (FRC Events, FTC Events)
- sync: Step registry, orchestrator, reconciler and batch dispatcher
- event_teams_service: Event roster upkeep
"""
