"""Stores: admin management and the browse listing for normal users."""
