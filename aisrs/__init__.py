"""
AISRS - AI-assisted spaced repetition for Japanese

Subpackages:
    srs        Review scheduling, forecast buckets, AI question recycling
    analytics  Review dashboard built with pandas
"""
