"""
Prospera - Source Package

Batch backend for a personal/family finance application: monthly
renewal of recurring items, rule-based insights and alert email digests,
all running against a managed Postgres (Supabase) row store.

DESIGN PRINCIPLES:
1. Every monetary aggregate is recomputed from current rows
2. One failing row or step never aborts the batch
3. Every job step is auditable
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Prospera Team"
