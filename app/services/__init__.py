from app.services.audit_logger import AuditLogger
from app.services.change_feed import ChangeFeed, get_change_feed
from app.services.remote_store import RemoteStore
from app.services.schema_registry import SchemaRegistry, get_schema_registry
from app.services.table_orchestrator import TableOrchestrator

__all__ = [
	"AuditLogger",
	"ChangeFeed",
	"RemoteStore",
	"SchemaRegistry",
	"TableOrchestrator",
	"get_change_feed",
	"get_schema_registry",
]
