"""Ratings: submission by normal users and aggregation for store owners."""
