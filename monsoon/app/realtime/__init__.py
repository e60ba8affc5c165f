"""
realtime — keeping the dashboard current.

Sub-modules:
    events      — typed publish/subscribe bus
    store       — latest view with generation guard
    dispatcher  — timers, push triggers, coalesced refreshes
    websocket   — browser push channel
"""
