"""
Shared utilities for termjobs.

Modules:
    - config: Environment-driven EngineConfig
    - format: Duration, byte, count and rate formatting
    - style: ANSI colour and style helpers
    - diagnostics: JSONL frame log
    - osc: Aggregate progress reporting (OSC 9;4)
    - log_handler: logging.Handler that prints above the progress region
"""
