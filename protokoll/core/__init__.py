"""
Core functionality for Protokoll.

This package contains the main logic for:
- Hierarchical discovery of .protokoll directories and config merging
- Loading and persisting context entities (people, projects, companies, terms)
- Typo-tolerant entity lookup
- Signal-based routing of transcripts to project destinations
- Configuration management
"""
