"""Safety pipeline: crisis keywords, pattern moderation, AI classifier, risk aggregation."""
