"""
API routes.

- sync: event sync triggers (/api/v1/event-sync)
- health: data source health (/api/v1/health)
"""
