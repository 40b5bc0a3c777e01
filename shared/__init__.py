"""
Shared module for common utilities used by the WA Gateway.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging

- shared.infrastructure: Cross-cutting runtime helpers
  - correlation.py: Connection id context var and logging filter

- shared.utils: Utilities
  - exceptions.py: Gateway exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
    from shared.infrastructure.correlation import bind_connection_id
    from shared.utils.exceptions import InvalidPayloadError
"""
