import logging
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from securevault.core.database import Database, get_database
from securevault.core.errors import ValidationError
from securevault.migrations.engine import MigrationEngine, MigrationError
from securevault.api.dependencies import require_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/migrations",
    tags=["migrations"],
    dependencies=[Depends(require_admin_token)],
)


class MigrationCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Optional[str] = None
    target_version: Optional[int] = Field(default=None, alias="targetVersion", ge=0)


def get_migration_engine(database: Database = Depends(get_database)) -> MigrationEngine:
    return MigrationEngine(database.engine)


@router.get("")
def migration_status(engine: MigrationEngine = Depends(get_migration_engine)):
    """Applied ledger, ordered by version"""
    try:
        rows = engine.status()
    except SQLAlchemyError:
        logger.exception("Get migration status error")
        return JSONResponse(status_code=500, content={"error": "Failed to get migration status"})

    migrations = [
        {
            "version": row["version"],
            "name": row["name"],
            "executed_at": row["executed_at"].isoformat() if row["executed_at"] else None,
        }
        for row in rows
    ]
    return {
        "success": True,
        "migrations": migrations,
        "count": len(migrations),
        "currentVersion": migrations[-1]["version"] if migrations else 0,
    }


@router.post("")
def run_migration_action(
    command: MigrationCommand,
    engine: MigrationEngine = Depends(get_migration_engine),
):
    """Run pending migrations or roll back to a target version"""
    if command.action not in ("migrate", "rollback"):
        raise ValidationError('Invalid action. Use "migrate" or "rollback"')

    try:
        if command.action == "migrate":
            applied = engine.migrate()
            return {
                "success": True,
                "message": "Migrations completed successfully",
                "applied": [m.version for m in applied],
            }

        version = command.target_version or 0
        rolled_back = engine.rollback(version)
        return {
            "success": True,
            "message": f"Rolled back to version {version}",
            "rolledBack": [m.version for m in rolled_back],
        }
    except MigrationError:
        # Detail is already in the server log
        return JSONResponse(status_code=500, content={"error": "Migration operation failed"})
