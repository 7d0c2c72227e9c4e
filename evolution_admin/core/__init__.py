"""Core Business Logic Module

User administration rules, independent of the HTTP layer.

Module Structure:
    - store/               : User and location persistence contracts
    - rbac.py              : Who may do what, dispatched on actor role
    - invariants.py        : superAdmin cap, last-superAdmin, last-admin-of-location
    - user_service.py      : Create / list / update / deactivate / reset users
    - assignment_service.py: Admin location assignment and primary location
    - stats_service.py     : Read-only admin statistics
    - transformer.py       : Stored document -> sanitized public shape
    - validators.py        : Payload and query validation
    - credentials.py       : Password hashing

Services take an ``ActorContext`` already resolved by the caller and raise
typed ``AdminError`` subclasses; they never build HTTP responses.
"""
