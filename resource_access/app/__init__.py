"""
Resource access core for the print-ops dashboard.
"""
