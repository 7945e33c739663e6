"""
Form engine: typed answer view, completion checking, status cascade,
submission merge, CSV export and analytics over a scholar's form schema.
"""
