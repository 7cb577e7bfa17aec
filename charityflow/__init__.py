"""CharityFlow Source Package.

Communication and automation workflow core for a charity membership system.

Layers:
    - core: Configuration, logging, exceptions
    - db: Data models and the member store / execution log collaborators
    - integrations: Delivery transport, sinks, external automation webhooks
    - engine: Segmentation, triggers, personalization, scheduling, workflows
    - autonomous: Automation dispatcher routing inbound events to workflows
"""

__version__ = "0.1.0"
