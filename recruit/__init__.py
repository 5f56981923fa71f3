"""Backend package: DB models, storage, enrichment, pipelines, APIs.

This package orchestrates candidate identity resolution, record merging,
LinkedIn enrichment and individual scoring for multi-tenant recruiting data.
"""
