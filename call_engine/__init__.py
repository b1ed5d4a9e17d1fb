"""
Call Scoring Engine - Bronze/Silver/Gold Architecture
=====================================================
A five-stage pipeline for sales call analysis:
  Stage 1: Spreadsheet Parser (Bronze, deterministic)
  Stage 2: Triage (heuristics first, AI only when needed)
  Stage 3: Contact Extraction + Validation (Silver)
  Stage 4: Performance Scoring (Gold, weighted overall score)
  Stage 5: Rep Summaries and Fleet Statistics
"""

__version__ = "1.0.0"
__author__ = "Call Scoring Team"
