"""
Stripe webhook receiver and dispute event handlers.
"""
