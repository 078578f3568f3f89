"""State layer.

Pure decision and permission rules plus the persisted config store.
Only the drive controller combines them.
"""
