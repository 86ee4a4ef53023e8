"""
Background job engine.

This package provides a durable job system with:
- Database-backed queue with conditional-update claiming
- Registry-based pluggable handlers
- Retries with exponential backoff and a dead-letter queue
- In-process delayed and recurring schedules
- An event table mapping application events to job types
"""
