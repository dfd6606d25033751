"""
Border monitor: scheduled news/social ingestion with duplicate collapse.
"""
