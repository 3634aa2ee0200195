"""
Trend Radar -- trending sound ingestion and ranking.

Detects viral sounds by velocity (growth rate) rather than volume.

Components:
  velocity.py   -- percentage growth between usage samples
  store.py      -- sounds + append-only usage snapshots
  rotation.py   -- which regions to re-scrape, and when
  scorer.py     -- ranked read path (latest snapshot per sound)
  collector.py  -- scrape -> parse -> snapshot pipeline
"""
