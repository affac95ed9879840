"""Agenda scheduling and waitlist engine."""
