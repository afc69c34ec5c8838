"""
Service layer

Read models and collaborators built on top of the core:
- snapshot_service: full current-day state for a connecting client
- status_service: composite status of every room
- push_service: Web Push notifications
"""
