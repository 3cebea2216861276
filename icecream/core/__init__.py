"""Pure turn-engine core: pulses, events, decisions, endings and the turn loop.

Nothing in here performs I/O; callers load a snapshot, advance it and persist the
result.
"""
