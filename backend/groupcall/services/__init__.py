"""Business Logic Services.

This package contains the service modules of the group call backend.

Service Categories:
- group_call: Call lifecycle, state machine, abandonment timers
- connection: WebSocket connections, event dispatch, Redis relay
- core: Session store and room directory over SQLAlchemy
- protocols: Interfaces between the lifecycle and its collaborators
"""
