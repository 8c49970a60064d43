"""Huddle Scheduler Service: meeting availability and slot resolution."""
