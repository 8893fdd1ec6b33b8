"""
Core functionality for DropMind.

This package contains the main logic for:
- Intent classification and confirmation escalation
- Transcript capture sessions over pluggable speech sources
- Transcript normalization
- Configuration and debug logging
"""
