"""
Test suite for DropMind.

This package contains tests for all core functionality including:
- Type definitions and data structures
- Transcript normalization stages
- Intent classification and routing
- Transcript capture sessions and speech sources
- Configuration management
- The command-line interface
"""
