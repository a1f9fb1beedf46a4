"""
Migration-specific exceptions.

Exception hierarchy for the migration engine. Only the query helpers
raise these to callers; migrate_to and rollback_to_version capture them
into their results.
"""
from typing import Optional


class MigrationError(Exception):
    """
    Base exception for migration errors.

    Every exception raised by the engine derives from it, so hosts can
    catch engine failures with a single except clause.
    """
    pass


class ConfigurationError(MigrationError):
    """
    Migration request or catalog is misconfigured.

    Raised when:
    - Target version is not defined in the catalog
    - A version on the migration path is missing from the catalog
    - Rollback target is not lower than the current version
    - Version strings or catalog definitions are malformed
    """
    pass


class RollbackUnavailableError(MigrationError):
    """
    Downgrade requested past a version that defines no rollback scripts.

    Attributes:
        version: The irreversible version that blocks the downgrade
    """

    def __init__(self, version: str):
        self.version = version
        super().__init__(
            f"Version {version} does not define rollback scripts"
        )


class ScriptExecutionError(MigrationError):
    """
    A statement inside a migration script failed.

    Wraps the underlying driver error and tags it with the script that
    was running, so failures can be attributed in results and logs.

    Attributes:
        script_id: Id of the failing script
        version: Version the script belongs to
        cause: Original exception raised by the database
    """

    def __init__(self, script_id: str, version: str, cause: Exception):
        self.script_id = script_id
        self.version = version
        self.cause = cause
        super().__init__(
            f"Script {script_id} (version {version}) failed: {cause}"
        )


class IntegrityViolationError(MigrationError):
    """
    Persisted migration state does not match expectations.

    Raised when:
    - A ledger row has an unexpected shape (unknown enum, bad JSON)
    - Strict integrity validation finds blocking issues

    Attributes:
        issues: Human-readable list of problems found
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = list(issues or [])
        super().__init__(message)
