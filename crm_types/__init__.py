"""
Shared data transfer objects for the CRM chat service.

These models are used by the backend for request/response validation and
by clients to build real-time events.
"""
