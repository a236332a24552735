"""
Stagecoach - background job pipeline and remote staging dispatch.

- stagecoach.core: errors, logging, settings, backend factory
- stagecoach.execution: job wrappers, enqueuer, queue backends, worker
- stagecoach.bus: asynchronous request/reply message bus
- stagecoach.staging: staging dispatch task
"""

__version__ = "0.1.0"
