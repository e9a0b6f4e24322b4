"""Closed-loop walking and running route generator."""
