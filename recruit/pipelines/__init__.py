"""Pipelines for sanitization, identity resolution, merging, ingestion and processing.

Each step is callable independently so the same logic serves single uploads,
batch uploads and re-scoring runs.
"""
