"""
channels — Per-channel delivery adapters.

Each channel module exposes:
    send(contact, message, *, provider) → DeliveryReceipt

and raises DeliveryFailed when the message was not accepted. Adapters are
stateless; timeouts and fan-out live in the orchestrator.
"""
