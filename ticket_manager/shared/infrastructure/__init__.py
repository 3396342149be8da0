"""
Infrastructure Layer
=====================

Low-level technical concerns shared across modules:
- Structured JSON logging
- Correlation ID propagation
- Latency logging
"""
