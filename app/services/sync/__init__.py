"""
Event Sync Engine

Mirrors event data from external sources into the local store and moves
each event forward through its lifecycle.

Key components:
- Steps: ordered, status-gated units of progression (steps.py)
- Orchestrator: runs steps for one event to a fixed point, commits once
- Match reconciler: merges fetched matches into plays, detecting replays
- Alliance correlator: binds playoff plays to alliances, aggregates finals
- Dispatcher: syncs many events with bounded parallelism
"""
