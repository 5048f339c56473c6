"""
Event producers and consumers for the delivery services
"""
