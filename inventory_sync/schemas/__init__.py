"""
schemas/ — Pydantic request/response models for the sync functions

One request model per function so malformed bodies fail with a 422 at
the boundary instead of deep inside a sync run.
"""
