"""
Background provisioning jobs.

A job reports progress on an EventStream and owns its own lifetime; the event bridge
only starts it and relays its events.
"""

from onboarding.jobs.base import Event, EventStream, Job, JobEventSource, start_job

__all__ = ["Event", "EventStream", "Job", "JobEventSource", "start_job"]
