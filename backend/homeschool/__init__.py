"""Homeschool Hub identity and session core."""
