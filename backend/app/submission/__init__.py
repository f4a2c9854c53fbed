"""
submission — Form + file delivery with ordered channel fail-over.

Sub-modules:
    channels/      — Per-channel delivery backends (direct, proxies, relay, local)
    orchestrator   — Sequential fail-over engine and result classification
    progress       — Simulated + real progress ramp for one run
    registry       — Ordered channel list built from settings
    local_store    — In-memory handles for locally retained files
    service        — Shared client, stores and in-flight tracking
    models         — Data structures shared across the system
"""
