"""Domain layer: value objects, aggregates and domain events.

Each aggregate (Order, Payment, Product, Vendor) is a guarded state
machine.  Aggregates never call each other; cross-aggregate effects are
orchestrated by handlers reacting to the events they emit.
"""
