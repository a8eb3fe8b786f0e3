"""Deadline Radar: deadline extraction from page text."""
