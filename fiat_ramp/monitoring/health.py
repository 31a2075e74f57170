"""
Health checks for Kubernetes readiness/liveness checks.

Checks:
- Ledger database connectivity
"""
from typing import Any, Dict

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the ledger database dependency."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        """
        Initialize health check service.

        Args:
            session_factory: Ledger database session factory, None when the
                ledger is not database-backed
        """
        self.session_factory = session_factory

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict[str, Any]: Database health status

        Raises:
            HealthCheckError: If database check fails
        """
        if self.session_factory is None:
            return {
                "status": "healthy",
                "service": "database",
                "message": "Ledger store is not database-backed",
            }

        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "healthy",
                "service": "database",
                "message": "Database connection successful",
            }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness check.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Returns:
            Dict[str, Any]: Overall health status with per-dependency checks
        """
        try:
            database = await self.check_database()
        except HealthCheckError as e:
            return {
                "status": "unhealthy",
                "checks": {
                    "database": {"status": "unhealthy", "service": "database", "error": str(e)}
                },
            }

        return {"status": "healthy", "checks": {"database": database}}
