"""Autonomous operations package.

Inbound events (payments, registrations, member actions, cron ticks) are
routed to workflows here; scheduled tasks leave through the task sink.

Modules:
    - dispatcher: AutomationService, the inbound event router
"""
