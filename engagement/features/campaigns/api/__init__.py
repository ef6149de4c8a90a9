"""
HTTP surface of the campaign scheduler.
"""
