"""Discount offers: the evaluator applied at booking time and their administration."""
