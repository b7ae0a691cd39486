"""
schoolface - School-day clock face engine

Renders a clock face that doubles as a school-day progress display: an outer
ring for the whole day, an inner ring for the current class, and labels for the
elapsed percentage and the next class.

Core modules:
- schedule: Class interval parsing and gapless normalization with breaks
- progress: Completion fractions and current/next class lookup
- render: Draw plan construction (rings, labels, truncation policy)
- timers: Self-rescheduling asyncio timers for polling and redraws
- token_channel: Companion-device bearer token discovery over MQTT
- engine: Lifecycle state machine tying the pieces together
"""

__version__ = "0.4.2"
