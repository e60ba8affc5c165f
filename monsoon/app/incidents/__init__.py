"""
incidents — field reports of waterlogging, potholes and blocked drains.

Sub-modules:
    models   — Incident, IncidentLocation, id generation
    feed     — capped in-memory feed + local JSON store
    service  — submission, remote forwarding/refresh, demo generator
"""
