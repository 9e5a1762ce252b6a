"""
schedwatch: tracks a periodically scraped schedule hierarchy and notifies subscribers of changes.
"""
