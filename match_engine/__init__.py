"""
Product Match Engine - Contact/Product Fit Scoring
==================================================
A four-stage pipeline scoring how well a CRM contact fits a sales product:
  Stage 1: Factor Scoring (industry, size, title, tags, status)
  Stage 2: Match Composer (score, reasons, approach, objections)
  Stage 3: Reasoning Collaborator (LLM semantic analysis)
  Stage 4: AI Blend (effort-weighted score blending)
"""

__version__ = "1.0.0"
__author__ = "Product Match Team"
