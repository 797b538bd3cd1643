"""Relational persistence for therapist schedules."""
