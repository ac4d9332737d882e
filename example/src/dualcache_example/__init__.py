"""Runnable examples for the dualcache package."""
