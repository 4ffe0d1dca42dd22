"""
Shared infrastructure for the data-access layer.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Soft-delete flag values, operators, limits

- shared.infrastructure: Database
  - db.py: SQLAlchemy engine and sessions, safe_commit()

- shared.utils: Utilities
  - exceptions.py: Data-access errors with auto-logging, is_not_found()

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db_context, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import SoftDeleteFlag
    from shared.utils.exceptions import PrimaryKeyBlankError, is_not_found
"""
