"""
Payment provider integrations (PayPal, Paystack).
"""
