"""Cross-domain position rebalancing core.

This package contains the building blocks of the reactive pipeline:

- domains: origin registry, reactive manager, destination handler
- ledger: append-only dedup ledgers (idempotency primitive)
- guards: authorization predicates, circuit breaker, reentrancy guard
- events: structured event log emitted by every domain
- relay: envelope codec and an in-process relay transport
- execution: execution venue interface and the paper venue stub
- persistence: analytics store boundary (interfaces)
- storage: concrete analytics store implementations

Every domain is administered independently. Domains never share mutable
state; they exchange payloads by value through the relay.
"""
