# Services package init
"""
NightPlan Backend — Services Layer
====================================

What:  Contract logic sitting between callers (API handlers, workers) and
       persistence / the event channel.
Why:   Hosts stay thin; validation, merge rules and delivery semantics live here.

Service Inventory:
    - event_contract: build / parse / serialize plan events (pure)
    - EventPublisher (abstract): interface for event channels
    - RedisEventPublisher: Redis pub/sub with retries and a circuit breaker
    - InMemoryEventPublisher: in-process channel for development and tests
    - PlanEventService: fire-and-forget emission from the plan write paths
    - PlanEventConsumer + IdempotencyStore: at-most-once processing per eventId
    - PreferenceService: lookup-or-create and partial merge of preferences
    - health_service: database and event channel probes
"""
