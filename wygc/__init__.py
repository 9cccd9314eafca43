"""who-you-gonna-call: tiered alert escalation dispatcher."""

__version__ = "0.1.0"
