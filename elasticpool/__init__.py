"""Elastic thread pool with delayed and periodic tasks; see elasticpool.worker_pool."""

__version__ = "0.1.0"
__all__ = ["worker_pool"]