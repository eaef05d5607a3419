"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Timestamp kernel (day bounds, selectors, seeding)
    - Worker pool (splitting, ordering, failure handling)
    - Content store and object store backends
    - History assembler (chain shape, single-writer ref moves)
    - Publish queue (backpressure, outcomes, cancellation)
    - Batch scheduler (end-to-end scenarios)
    - Configuration (JSON document, overrides, schedule)
"""
