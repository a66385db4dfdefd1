"""Query Validator: compiles query + UDFs against the remote compiler."""

import structlog

from jobforge.core.api_client import PipelineApiClient
from jobforge.core.errors import TransportError
from jobforge.core.metrics import validation_requests_total
from jobforge.schemas.pipeline import (
    ErrorsResult,
    GraphResult,
    UdfDefinition,
    UdfLanguage,
    ValidationResult,
)

logger = structlog.stdlib.get_logger(__name__)


def udf_definitions(udfs: str) -> list[UdfDefinition]:
    """The editor's UDF text is always sent as a single Rust UDF, even when empty."""
    return [UdfDefinition(language=UdfLanguage.RUST, definition=udfs)]


class QueryValidator:
    """Validates a query remotely and classifies the outcome."""

    def __init__(self, api: PipelineApiClient):
        self._api = api

    async def validate(self, query: str, udfs: str) -> ValidationResult:
        """Return GraphResult or ErrorsResult.

        Raises:
            TransportError: the compiler could not be reached or answered
                with something that is not a validation result.
        """
        try:
            result = await self._api.validate_graph(query, udf_definitions(udfs))
        except TransportError as exc:
            validation_requests_total.labels(result="transport_error").inc()
            logger.warning("query_validation_unavailable", error=str(exc))
            raise

        match result:
            case GraphResult(graph=graph):
                validation_requests_total.labels(result="graph").inc()
                logger.info(
                    "query_validated", nodes=len(graph.nodes), edges=len(graph.edges)
                )
            case ErrorsResult(errors=errors):
                validation_requests_total.labels(result="errors").inc()
                logger.info(
                    "query_rejected", error_count=len(errors), first=errors[0].message
                )
        return result
