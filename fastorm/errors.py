class FastOrmError(Exception):
    pass


class ConfigurationError(FastOrmError):
    """Raised when the caller supplies an incomplete or invalid setup"""

    pass


class DatabaseConnectionError(FastOrmError):
    """Raised when no pooled or transactional connection is available"""

    pass


class MigrationError(FastOrmError):
    def __init__(self, name: str, direction: str, reason: str):
        self.name = name
        self.direction = direction
        super().__init__(f"Migration {name} failed while running {direction}: {reason}")
