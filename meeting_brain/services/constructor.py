import os
from typing import TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from meeting_brain.context import Context

from meeting_brain.constructor import ServerManagerType
from meeting_brain.services.embedding_manager.manager import EmbeddingManager
from meeting_brain.services.extraction_manager.manager import ExtractionManager
from meeting_brain.services.ingestion_manager.manager import IngestionManager
from meeting_brain.services.logger import AsyncLoggingService
from meeting_brain.services.manager import ServicesManager
from meeting_brain.services.ollama_request_manager.manager import OllamaRequestManager
from meeting_brain.services.search_manager.manager import SearchManager
from meeting_brain.services.transcript_sql_manager.manager import TranscriptSQLManagerService
from meeting_brain.services.vector_index_manager.manager import VectorIndexManager

# prefer a project-local .env.local file, then fallback to the process environment
load_dotenv(dotenv_path=".env.local")

# -------------------------------------------------------------- #
# Constructor for Dynamic Creation of Services Manager
# -------------------------------------------------------------- #


def construct_services_manager(
    service_type: ServerManagerType,
    context: "Context",
    default_logging_path: str = "logs",
    log_file: str | None = None,
    use_timestamp_logs: bool = True,
) -> ServicesManager:
    """Construct and return a services manager wired to the context's server manager.

    Args:
        service_type: Type of server manager (PRODUCTION or TESTING)
        context: Context instance holding an initialized server manager
        default_logging_path: Directory to store log files (default: "logs")
        log_file: Specific log file name (optional, overrides use_timestamp_logs)
        use_timestamp_logs: If True and log_file is None, creates timestamped log files
    """
    logging_service = AsyncLoggingService(
        context=context,
        log_dir=default_logging_path,
        log_file=log_file,
        use_timestamp=use_timestamp_logs,
        console_output=service_type == ServerManagerType.PRODUCTION,
        min_level=os.getenv("LOG_LEVEL", "INFO"),
    )

    # Language model adapters
    ollama_request_manager = OllamaRequestManager(context=context)
    extraction_manager = ExtractionManager(context=context)
    embedding_manager = EmbeddingManager(context=context)

    # Store access
    transcript_sql_manager = TranscriptSQLManagerService(context=context)
    vector_index_manager = VectorIndexManager(context=context)

    # Orchestrators
    ingestion_manager = IngestionManager(context=context)
    search_manager = SearchManager(context=context)

    return ServicesManager(
        context=context,
        logging_service=logging_service,
        ollama_request_manager=ollama_request_manager,
        extraction_manager=extraction_manager,
        embedding_manager=embedding_manager,
        transcript_sql_manager=transcript_sql_manager,
        vector_index_manager=vector_index_manager,
        ingestion_manager=ingestion_manager,
        search_manager=search_manager,
    )
