"""
Test suite for Protokoll.

This package contains tests for all core functionality including:
- Hierarchical discovery and configuration merging
- Entity storage, search and persistence
- Resilient (typo-tolerant) entity lookup
- Signal-based routing and output path building
- Configuration management and the CLI
"""
